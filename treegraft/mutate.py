# mutate.py -- Single-path edits of git trees
# Copyright (C) 2025 Jelmer Vernooij <jelmer@jelmer.uk>
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# treegraft is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Insert or remove a single path in a tree.

Trees are never modified in place. Each edit rewrites only the trees on the
path from the root to the changed entry and returns the id of the new root;
every other subtree is shared with the old root by id.

A directory left without entries by a removal is dropped from its parent,
so ``TreeMutator.remove`` returns None when the root itself ends up empty.
Callers that need a root tree then write the empty tree explicitly, see
``empty_tree``.
"""

__all__ = [
    "TreeMutator",
    "empty_tree",
    "split_path",
]

import stat
from collections.abc import Sequence

from .errors import InvalidPathError, NotFoundError, TypeMismatchError
from .log_utils import getLogger
from .object_store import BaseObjectStore
from .objects import DEFAULT_FILE_MODE, EMPTY_TREE_ID, ObjectID, Tree

logger = getLogger(__name__)


def split_path(path: bytes | str) -> list[bytes]:
    """Split a slash separated path into its segments.

    Leading and trailing slashes are ignored.

    Raises:
      InvalidPathError: if the path is empty or has an empty, '.' or '..'
        segment
    """
    if isinstance(path, str):
        path = path.encode("utf-8")
    segments = path.strip(b"/").split(b"/")
    for segment in segments:
        if segment in (b"", b".", b".."):
            raise InvalidPathError(path)
    return segments


def empty_tree(object_store: BaseObjectStore) -> ObjectID:
    """Store the empty tree and return its id."""
    tree = Tree()
    object_store.add_object(tree)
    assert tree.id == EMPTY_TREE_ID
    return tree.id


class TreeMutator:
    """Applies single-path edits to trees in an object store."""

    def __init__(self, object_store: BaseObjectStore) -> None:
        self.object_store = object_store

    def _read_tree(self, tree_id: ObjectID, path: bytes) -> Tree:
        try:
            obj = self.object_store[tree_id]
        except KeyError as exc:
            raise NotFoundError(
                path or b"/", f"tree {tree_id.decode('ascii')} is missing"
            ) from exc
        if not isinstance(obj, Tree):
            raise TypeMismatchError(path or b"/")
        return obj

    def _write_tree(self, tree: Tree) -> ObjectID:
        self.object_store.add_object(tree)
        return tree.id

    def upsert(
        self,
        root: ObjectID | None,
        segments: Sequence[bytes],
        blob_id: ObjectID,
        mode: int = DEFAULT_FILE_MODE,
    ) -> ObjectID:
        """Point a path at a blob, creating intermediate directories.

        Whatever was at the path before is replaced, including a directory.
        A blob standing where an intermediate directory is needed is replaced
        by that directory.

        Args:
          root: Id of the root tree, or None to start from nothing
          segments: Path segments, see split_path
          blob_id: Id of the blob to store at the path
          mode: File mode for the new entry
        Returns: Id of the new root tree
        """
        if not segments:
            raise InvalidPathError(b"")
        return self._upsert(root, list(segments), b"", blob_id, mode)

    def _upsert(
        self,
        tree_id: ObjectID | None,
        segments: list[bytes],
        prefix: bytes,
        blob_id: ObjectID,
        mode: int,
    ) -> ObjectID:
        name, rest = segments[0], segments[1:]
        tree = Tree() if tree_id is None else self._read_tree(tree_id, prefix)
        existing = tree[name] if name in tree else None
        if name in tree:
            del tree[name]
        if not rest:
            tree.add(name, mode, blob_id)
        else:
            subtree_id = None
            if existing is not None and stat.S_ISDIR(existing[0]):
                subtree_id = existing[1]
            child_prefix = prefix + b"/" + name if prefix else name
            tree.add(
                name,
                stat.S_IFDIR,
                self._upsert(subtree_id, rest, child_prefix, blob_id, mode),
            )
        return self._write_tree(tree)

    def remove(
        self, root: ObjectID, segments: Sequence[bytes]
    ) -> ObjectID | None:
        """Remove a path, pruning directories that become empty.

        Nothing is written unless the whole path exists.

        Args:
          root: Id of the root tree
          segments: Path segments, see split_path
        Returns: Id of the new root tree, or None if the root became empty

        Raises:
          NotFoundError: if a segment of the path does not exist
          TypeMismatchError: if a non-final segment names a blob
        """
        if not segments:
            raise InvalidPathError(b"")
        # Walk down first so a bad path fails before any tree is written.
        trees = []
        tree_id = root
        prefix = b""
        for i, name in enumerate(segments):
            tree = self._read_tree(tree_id, prefix)
            prefix = prefix + b"/" + name if prefix else name
            if name not in tree:
                raise NotFoundError(prefix)
            trees.append(tree)
            mode, tree_id = tree[name]
            if i < len(segments) - 1 and not stat.S_ISDIR(mode):
                raise TypeMismatchError(prefix)

        new_child: ObjectID | None = None
        for name, tree in zip(reversed(segments), reversed(trees)):
            if new_child is None:
                del tree[name]
            else:
                tree[name] = (stat.S_IFDIR, new_child)
            if not len(tree):
                logger.debug("pruning empty directory above %r", name)
                new_child = None
                continue
            new_child = self._write_tree(tree)
        return new_child

    def remove_to_root(self, root: ObjectID, segments: Sequence[bytes]) -> ObjectID:
        """Remove a path and always return a root tree.

        Like remove, but an empty result is stored as the empty tree.
        """
        new_root = self.remove(root, segments)
        if new_root is None:
            return empty_tree(self.object_store)
        return new_root
