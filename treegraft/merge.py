# merge.py -- Three-way merge of git trees
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

"""Three-way merge of trees."""

__all__ = [
    "Merger",
    "make_merge3",
    "merge_blob_contents",
]

import stat
from collections.abc import Mapping, Sequence
from typing import TypeVar

import merge3

from .errors import MergeConflict, NotFoundError, TypeMismatchError
from .log_utils import getLogger
from .object_store import BaseObjectStore
from .objects import DEFAULT_FILE_MODE, Blob, ObjectID, ShaFile, Tree

logger = getLogger(__name__)

Entry = tuple[int, ObjectID]

T = TypeVar("T")


def make_merge3(
    base: Sequence[bytes], a: Sequence[bytes], b: Sequence[bytes]
) -> "merge3.Merge3[bytes]":
    """Return a line based Merge3 object for three versions of a file."""
    return merge3.Merge3(base, a, b)


def merge_blob_contents(base: bytes, ours: bytes, theirs: bytes) -> bytes | None:
    """Merge two edits of a file line by line.

    Returns: The merged content, or None if both sides changed the same
        region of the file.
    """
    m = make_merge3(
        base.splitlines(True), ours.splitlines(True), theirs.splitlines(True)
    )
    result: list[bytes] = []
    for group in m.merge_groups():
        if group[0] == "conflict":
            return None
        result.extend(group[1])
    return b"".join(result)


def _is_tree(entry: Entry | None) -> bool:
    return entry is not None and stat.S_ISDIR(entry[0])


def _pick(base: T, ours: T, theirs: T) -> T | None:
    """Three-way pick of a single value; None if both sides changed it."""
    if ours == theirs or theirs == base:
        return ours
    if ours == base:
        return theirs
    return None


class Merger:
    """Merges two trees against their common ancestor.

    Nothing is written to the object store until the whole merge has
    succeeded; a conflict leaves the store untouched.
    """

    def __init__(
        self,
        object_store: BaseObjectStore,
        resolutions: Mapping[bytes, bytes] | None = None,
        content_merge: bool = False,
    ) -> None:
        """Initialize merger.

        Args:
            object_store: Object store to read and write objects
            resolutions: Replacement file contents for conflicting paths,
                keyed by path relative to the root
            content_merge: Try a line based merge of conflicting files
                that have no resolution
        """
        self.object_store = object_store
        self.resolutions = dict(resolutions or {})
        self.content_merge = content_merge
        self._pending: list[ShaFile] = []

    def merge_trees(
        self,
        base: ObjectID | None,
        ours: ObjectID | None,
        theirs: ObjectID | None,
    ) -> ObjectID | None:
        """Perform a three-way merge of trees.

        Args:
            base: Common ancestor tree, None for unrelated histories
            ours: Our version of the tree
            theirs: Their version of the tree

        Returns:
            Id of the merged tree, or None if it has no entries

        Raises:
            MergeConflict: for the first path that could not be merged
        """
        self._pending = []
        try:
            merged = self._merge(base, ours, theirs, b"")
            self.object_store.add_objects(self._pending)
        finally:
            self._pending = []
        return merged

    def _entries(self, tree_id: ObjectID | None, path: bytes) -> dict[bytes, Entry]:
        if tree_id is None:
            return {}
        try:
            tree = self.object_store[tree_id]
        except KeyError as exc:
            raise NotFoundError(
                path or b"/", f"tree {tree_id.decode('ascii')} is missing"
            ) from exc
        if not isinstance(tree, Tree):
            raise TypeMismatchError(path or b"/")
        return {entry.path: (entry.mode, entry.sha) for entry in tree.iteritems()}

    def _store(self, obj: ShaFile) -> ObjectID:
        self._pending.append(obj)
        return obj.id

    def _merge(
        self,
        base: ObjectID | None,
        ours: ObjectID | None,
        theirs: ObjectID | None,
        path: bytes,
    ) -> ObjectID | None:
        base_entries = self._entries(base, path)
        our_entries = self._entries(ours, path)
        their_entries = self._entries(theirs, path)

        merged = Tree()
        for name in sorted(set(base_entries) | set(our_entries) | set(their_entries)):
            child_path = path + b"/" + name if path else name
            entry = self._merge_entry(
                base_entries.get(name),
                our_entries.get(name),
                their_entries.get(name),
                child_path,
            )
            if entry is not None:
                merged.add(name, *entry)

        if not len(merged):
            return None
        return self._store(merged)

    def _merge_entry(
        self,
        base: Entry | None,
        ours: Entry | None,
        theirs: Entry | None,
        path: bytes,
    ) -> Entry | None:
        if ours == theirs:
            return ours
        if ours == base:
            return theirs
        if theirs == base:
            return ours

        # A file changed on both sides: mode and content merge separately.
        if base is not None and ours is not None and theirs is not None:
            if not (_is_tree(base) or _is_tree(ours) or _is_tree(theirs)):
                mode = _pick(base[0], ours[0], theirs[0])
                sha = _pick(base[1], ours[1], theirs[1])
                if mode is not None and sha is not None:
                    return (mode, sha)

        # Both sides changed this entry, and differently.
        if _is_tree(ours) or _is_tree(theirs):
            if ours is not None and theirs is not None and _is_tree(ours) != _is_tree(
                theirs
            ):
                return self._conflict(path, "file/directory conflict")
            subtree = self._merge(
                base[1] if _is_tree(base) else None,  # type: ignore[index]
                ours[1] if ours is not None else None,
                theirs[1] if theirs is not None else None,
                path,
            )
            if subtree is None:
                return None
            return (stat.S_IFDIR, subtree)

        if path in self.resolutions:
            return self._conflict(path, "both sides changed")

        if self.content_merge and ours is not None and theirs is not None:
            merged = self._merge_contents(base, ours, theirs)
            if merged is not None:
                logger.info("Merged %s line by line", path.decode("utf-8", "replace"))
                return merged

        return self._conflict(path, "both sides changed")

    def _merge_contents(
        self, base: Entry | None, ours: Entry, theirs: Entry
    ) -> Entry | None:
        base_data = b""
        if base is not None and not _is_tree(base):
            base_data = self._blob_data(base[1])
        merged = merge_blob_contents(
            base_data, self._blob_data(ours[1]), self._blob_data(theirs[1])
        )
        if merged is None:
            return None
        if base is not None and ours[0] == base[0]:
            mode = theirs[0]
        else:
            mode = ours[0]
        return (mode, self._store(Blob.from_string(merged)))

    def _blob_data(self, sha: ObjectID) -> bytes:
        blob = self.object_store[sha]
        assert isinstance(blob, Blob)
        return blob.data

    def _conflict(self, path: bytes, message: str) -> Entry:
        try:
            content = self.resolutions[path]
        except KeyError:
            logger.info(
                "Conflict in %s: %s", path.decode("utf-8", "replace"), message
            )
            raise MergeConflict(path, message) from None
        logger.info("Applying resolution for %s", path.decode("utf-8", "replace"))
        return (DEFAULT_FILE_MODE, self._store(Blob.from_string(content)))
