# porcelain.py -- Porcelain-like layer on top of treegraft
# Copyright (C) 2013 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Simple wrapper that provides porcelain-like functions on top of treegraft.

Currently implemented:
 * branch{_create,_delete,_list} as create_branch, delete_branch, branch_list
 * gc
 * init
 * list_directory
 * merge_branches
 * put_file
 * read_file
 * remove_file

Every function takes either a path to a repository or a repository object
as its first argument. Refs may be given as short branch names ("main"),
full ref names ("refs/heads/main") or "HEAD".

Functions that change a branch never overwrite it blindly: they raise
StaleRefError if the branch moved while the change was being prepared.
"""

__all__ = [
    "DEFAULT_ENCODING",
    "RepoPath",
    "branch_list",
    "create_branch",
    "delete_branch",
    "gc",
    "init",
    "is_binary",
    "list_directory",
    "merge_branches",
    "open_repo_closing",
    "put_file",
    "read_file",
    "remove_file",
]

import os
import stat
from collections.abc import Iterator, Mapping
from contextlib import AbstractContextManager, closing, contextmanager
from typing import TYPE_CHECKING, TypeVar, overload

from .errors import (
    AlreadyExistsError,
    IsDirectoryError,
    NotFoundError,
    StaleRefError,
    TypeMismatchError,
)
from .log_utils import getLogger
from .merge import Merger
from .merge_base import can_fast_forward, find_merge_base
from .mutate import TreeMutator, empty_tree, split_path
from .object_store import tree_lookup_path
from .objects import (
    DEFAULT_FILE_MODE,
    EXECUTABLE_FILE_MODE,
    Blob,
    Commit,
    ObjectID,
    TreeEntry,
    valid_hexsha,
)
from .publish import AdvanceResult, RefUpdater, publish
from .refs import HEADREF, LOCAL_BRANCH_PREFIX, short_ref_to_full
from .repo import BaseRepo, Repo

if TYPE_CHECKING:
    from .gc import GCStats

logger = getLogger(__name__)

RepoPath = str | os.PathLike[str] | BaseRepo

T = TypeVar("T", bound=BaseRepo)

DEFAULT_ENCODING = "utf-8"

# Number of leading bytes inspected by is_binary
BINARY_CHECK_SIZE = 8000


@overload
def open_repo_closing(path_or_repo: T) -> AbstractContextManager[T]: ...


@overload
def open_repo_closing(
    path_or_repo: str | bytes | os.PathLike[str],
) -> AbstractContextManager[Repo]: ...


def open_repo_closing(
    path_or_repo: str | bytes | os.PathLike[str] | T,
) -> AbstractContextManager[T | Repo]:
    """Open an argument that can be a repository or a path for a repository.

    returns a context manager that will close the repo on exit if the argument
    is a path, else does nothing if the argument is a repo.
    """
    if isinstance(path_or_repo, BaseRepo):
        return _noop_context_manager(path_or_repo)
    return closing(Repo(path_or_repo))


@contextmanager
def _noop_context_manager(obj: T) -> Iterator[T]:
    """Context manager that has the same api as closing but does nothing."""
    yield obj


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode(DEFAULT_ENCODING)
    return value


def _display(value: bytes) -> str:
    return value.decode(DEFAULT_ENCODING, "replace")


def _head_target(r: BaseRepo) -> bytes:
    """Return the ref HEAD ultimately points at, existing or not."""
    refnames, _ = r.refs.follow(HEADREF)
    return refnames[-1]


def _resolve_commit(r: BaseRepo, ref: str | bytes) -> Commit:
    """Find the commit a ref or commit id refers to.

    Raises:
      NotFoundError: if neither a ref nor a commit matches
    """
    name = _to_bytes(ref)
    try:
        sha = r.refs[short_ref_to_full(name)]
    except KeyError:
        if not (valid_hexsha(name) and name in r.object_store):
            raise NotFoundError(name, f"ref {_display(name)} not found") from None
        sha = name
    try:
        return r.get_commit(sha)
    except KeyError as exc:
        raise NotFoundError(name, f"commit {_display(sha)} is missing") from exc


def _lookup(r: BaseRepo, tree_id: ObjectID, path: bytes) -> tuple[int, ObjectID]:
    try:
        return tree_lookup_path(r.object_store.__getitem__, tree_id, path)
    except KeyError as exc:
        raise NotFoundError(path, "object missing from the repository") from exc


def init(
    path: str | os.PathLike[str] = ".",
    *,
    default_branch: str | bytes | None = None,
    initial_commit: bool = False,
    author: bytes | None = None,
    committer: bytes | None = None,
) -> Repo:
    """Create a new bare repository.

    Args:
      path: Path to repository.
      default_branch: Branch HEAD points at; defaults to init.defaultBranch
        or "main"
      initial_commit: Whether to seed the default branch with a README.md
      author: Author identity for the initial commit
      committer: Committer identity for the initial commit
    Returns: A Repo instance
    """
    if not os.path.exists(path):
        os.mkdir(path)

    r = Repo.init_bare(
        path,
        default_branch=None if default_branch is None else _to_bytes(default_branch),
    )
    if initial_commit:
        put_file(
            r,
            HEADREF,
            "README.md",
            b"Hello World\n",
            message=b"Initial commit",
            author=author,
            committer=committer,
        )
    return r


def create_branch(
    repo: RepoPath,
    name: str | bytes,
    from_ref: str | bytes | None = None,
) -> ObjectID:
    """Create a branch.

    Args:
      repo: Path to the repository
      name: Name of the new branch
      from_ref: Ref or commit id to point the new branch at (defaults to HEAD)
    Returns: Commit id the new branch points at

    Raises:
      AlreadyExistsError: if the branch already exists
      NotFoundError: if from_ref does not exist
    """
    with open_repo_closing(repo) as r:
        if from_ref is None:
            from_ref = HEADREF
        commit = _resolve_commit(r, from_ref)
        refname = short_ref_to_full(_to_bytes(name))
        if refname == HEADREF:
            raise AlreadyExistsError(refname)
        result = RefUpdater(r.refs).advance(refname, None, commit.id)
        if result is AdvanceResult.STALE:
            raise AlreadyExistsError(refname)
        logger.info("Created branch %s at %s", _display(refname), _display(commit.id))
        return commit.id


def delete_branch(repo: RepoPath, name: str | bytes) -> None:
    """Delete a branch.

    Args:
      repo: Path to the repository
      name: Name of the branch

    Raises:
      NotFoundError: if the name is not a branch or does not exist
      StaleRefError: if the branch moved while it was being deleted
    """
    with open_repo_closing(repo) as r:
        refname = short_ref_to_full(_to_bytes(name))
        if not refname.startswith(LOCAL_BRANCH_PREFIX):
            raise NotFoundError(refname, f"{_display(refname)} is not a branch")
        current = r.refs.read_ref(refname)
        if current is None:
            raise NotFoundError(refname, f"branch {_display(refname)} not found")
        if not r.refs.remove_if_equals(refname, current):
            raise StaleRefError(refname, current)
        logger.info("Deleted branch %s (was %s)", _display(refname), _display(current))


def branch_list(repo: RepoPath) -> list[bytes]:
    """List all branches.

    Args:
      repo: Path to the repository
    Returns:
      Sorted list of branch names (without refs/heads/ prefix)
    """
    with open_repo_closing(repo) as r:
        return sorted(r.refs.keys(base=LOCAL_BRANCH_PREFIX))


def put_file(
    repo: RepoPath,
    ref: str | bytes,
    path: str | bytes,
    content: str | bytes,
    *,
    message: bytes | None = None,
    mode: int | None = None,
    author: bytes | None = None,
    committer: bytes | None = None,
    commit_timestamp: float | None = None,
    commit_timezone: int | None = None,
) -> ObjectID:
    """Write a file on a branch and commit the result.

    Intermediate directories are created as needed. Whatever was at the
    path before, a file or a directory, is replaced. A branch that does not
    exist yet is only created if it is the branch HEAD points at.

    Args:
      repo: Path to the repository
      ref: Branch to commit to
      path: Slash separated path of the file
      content: New file contents; str is encoded as UTF-8
      message: Commit message (defaults to "Add <path>" or "Update <path>")
      mode: File mode (defaults to the existing file's mode, or 0o100644)
      author: Author identity
      committer: Committer identity
      commit_timestamp: Commit time, defaults to now
      commit_timezone: Commit timezone offset in seconds
    Returns: Id of the new commit

    Raises:
      InvalidPathError: if the path is malformed
      StaleRefError: if the branch moved in the meantime
    """
    segments = split_path(path)
    tree_path = b"/".join(segments)
    data = _to_bytes(content)

    with open_repo_closing(repo) as r:
        refname = short_ref_to_full(_to_bytes(ref))
        existed = False

        def compute_tree(parent: Commit | None) -> ObjectID:
            nonlocal existed
            file_mode = mode
            root = parent.tree if parent is not None else None
            if root is not None:
                try:
                    old_mode, _ = _lookup(r, root, tree_path)
                except (NotFoundError, TypeMismatchError):
                    pass
                else:
                    existed = True
                    if file_mode is None and old_mode == EXECUTABLE_FILE_MODE:
                        file_mode = old_mode
            blob = Blob.from_string(data)
            r.object_store.add_object(blob)
            return TreeMutator(r.object_store).upsert(
                root, segments, blob.id, file_mode or DEFAULT_FILE_MODE
            )

        def default_message(parent: Commit | None) -> bytes:
            return (b"Update " if existed else b"Add ") + tree_path

        return publish(
            r,
            refname,
            compute_tree,
            message if message is not None else default_message,
            allow_unborn=refname in (HEADREF, _head_target(r)),
            author=author,
            committer=committer,
            commit_timestamp=commit_timestamp,
            commit_timezone=commit_timezone,
        )


def remove_file(
    repo: RepoPath,
    ref: str | bytes,
    path: str | bytes,
    *,
    message: bytes | None = None,
    author: bytes | None = None,
    committer: bytes | None = None,
    commit_timestamp: float | None = None,
    commit_timezone: int | None = None,
) -> ObjectID:
    """Remove a file or directory from a branch and commit the result.

    Directories left empty by the removal are removed as well; removing the
    last file leaves the branch at the empty tree.

    Args:
      repo: Path to the repository
      ref: Branch to commit to
      path: Slash separated path to remove
      message: Commit message (defaults to "Remove <path>")
      author: Author identity
      committer: Committer identity
      commit_timestamp: Commit time, defaults to now
      commit_timezone: Commit timezone offset in seconds
    Returns: Id of the new commit

    Raises:
      NotFoundError: if the branch or the path does not exist
      TypeMismatchError: if the path runs through a file
      StaleRefError: if the branch moved in the meantime
    """
    segments = split_path(path)
    tree_path = b"/".join(segments)

    with open_repo_closing(repo) as r:
        refname = short_ref_to_full(_to_bytes(ref))

        def compute_tree(parent: Commit | None) -> ObjectID:
            assert parent is not None
            return TreeMutator(r.object_store).remove_to_root(parent.tree, segments)

        return publish(
            r,
            refname,
            compute_tree,
            message if message is not None else b"Remove " + tree_path,
            allow_unborn=False,
            author=author,
            committer=committer,
            commit_timestamp=commit_timestamp,
            commit_timezone=commit_timezone,
        )


def is_binary(data: bytes) -> bool:
    """Guess whether data is binary, the way git does.

    Args:
      data: File contents
    Returns: True if there is a NUL byte near the start of data
    """
    return b"\0" in data[:BINARY_CHECK_SIZE]


def read_file(repo: RepoPath, ref: str | bytes, path: str | bytes) -> bytes:
    """Read a file from a branch.

    Args:
      repo: Path to the repository
      ref: Branch, ref or commit id to read from
      path: Slash separated path of the file
    Returns: File contents

    Raises:
      NotFoundError: if the ref or the path does not exist
      IsDirectoryError: if the path names a directory
      TypeMismatchError: if the path runs through a file
    """
    segments = split_path(path)
    tree_path = b"/".join(segments)
    with open_repo_closing(repo) as r:
        commit = _resolve_commit(r, ref)
        mode, sha = _lookup(r, commit.tree, tree_path)
        if stat.S_ISDIR(mode):
            raise IsDirectoryError(tree_path)
        if mode not in (DEFAULT_FILE_MODE, EXECUTABLE_FILE_MODE):
            logger.warning(
                "%s has unusual mode %06o, reading it as a file",
                _display(tree_path),
                mode,
            )
        try:
            return r.get_blob(sha).data
        except KeyError as exc:
            raise NotFoundError(tree_path, f"blob {_display(sha)} is missing") from exc


def list_directory(
    repo: RepoPath,
    ref: str | bytes = HEADREF,
    path: str | bytes = b"",
) -> list[TreeEntry]:
    """List the entries of a directory on a branch.

    Args:
      repo: Path to the repository
      ref: Branch, ref or commit id to list
      path: Slash separated directory path; empty for the root
    Returns: TreeEntry list in git order. Paths are relative to the
      directory; a path naming a file gives that single entry, under its
      full path.

    Raises:
      NotFoundError: if the ref or the path does not exist
      TypeMismatchError: if the path runs through a file
    """
    raw_path = _to_bytes(path).strip(b"/")
    with open_repo_closing(repo) as r:
        commit = _resolve_commit(r, ref)
        if raw_path:
            tree_path = b"/".join(split_path(raw_path))
            mode, sha = _lookup(r, commit.tree, tree_path)
        else:
            tree_path, mode, sha = b"", stat.S_IFDIR, commit.tree
        if not stat.S_ISDIR(mode):
            return [TreeEntry(tree_path, mode, sha)]
        try:
            tree = r.get_tree(sha)
        except KeyError as exc:
            raise NotFoundError(
                tree_path or b"/", f"tree {_display(sha)} is missing"
            ) from exc
        return tree.items()


def _normalize_resolutions(
    resolutions: Mapping[str | bytes, str | bytes] | None,
) -> dict[bytes, bytes]:
    ret = {}
    for path, content in (resolutions or {}).items():
        ret[b"/".join(split_path(path))] = _to_bytes(content)
    return ret


def merge_branches(
    repo: RepoPath,
    source: str | bytes,
    dest: str | bytes,
    resolutions: Mapping[str | bytes, str | bytes] | None = None,
    *,
    content_merge: bool = False,
    message: bytes | None = None,
    author: bytes | None = None,
    committer: bytes | None = None,
    commit_timestamp: float | None = None,
    commit_timezone: int | None = None,
) -> ObjectID:
    """Merge one branch into another.

    The trees are merged against the lowest common ancestor of the two
    branches; branches without common history merge against nothing. The
    result is committed on dest with parents [dest, source].

    If source is already contained in dest nothing is committed.

    Args:
      repo: Path to the repository
      source: Branch to merge
      dest: Branch to merge into; this is the branch that is updated
      resolutions: File contents to use for conflicting paths
      content_merge: Try a line based merge for conflicting files without
        a resolution
      message: Commit message
        (defaults to "Merge branch '<source>' into '<dest>'")
      author: Author identity
      committer: Committer identity
      commit_timestamp: Commit time, defaults to now
      commit_timezone: Commit timezone offset in seconds
    Returns: Id of the commit dest now points at

    Raises:
      NotFoundError: if either branch does not exist
      MergeConflict: for the first conflicting path without a resolution
      StaleRefError: if dest moved in the meantime
    """
    source_name = _to_bytes(source)
    dest_name = _to_bytes(dest)
    resolved = _normalize_resolutions(resolutions)

    with open_repo_closing(repo) as r:
        source_ref = short_ref_to_full(source_name)
        dest_ref = short_ref_to_full(dest_name)
        source_commit = _resolve_commit(r, source_ref)
        dest_commit = _resolve_commit(r, dest_ref)

        if can_fast_forward(r, source_commit.id, dest_commit.id):
            logger.info(
                "%s is already merged into %s",
                _display(source_name),
                _display(dest_name),
            )
            return dest_commit.id

        def compute_tree(parent: Commit | None) -> ObjectID:
            assert parent is not None
            bases = find_merge_base(r, [parent.id, source_commit.id])
            base_tree = r.get_commit(bases[0]).tree if bases else None
            merger = Merger(r.object_store, resolved, content_merge=content_merge)
            merged = merger.merge_trees(base_tree, parent.tree, source_commit.tree)
            if merged is None:
                return empty_tree(r.object_store)
            return merged

        if message is None:
            message = b"Merge branch '%s' into '%s'" % (source_name, dest_name)

        return publish(
            r,
            dest_ref,
            compute_tree,
            message,
            extra_parents=[source_commit.id],
            allow_unborn=False,
            author=author,
            committer=committer,
            commit_timestamp=commit_timestamp,
            commit_timezone=commit_timezone,
        )


def gc(
    repo: RepoPath,
    grace_period: int | None = 1209600,  # 2 weeks default
    dry_run: bool = False,
) -> "GCStats":
    """Run garbage collection on a repository.

    Args:
      repo: Path to the repository or a Repo object
      grace_period: Grace period in seconds for pruning (default 2 weeks)
      dry_run: If True, only report what would be done

    Returns:
      GCStats object with garbage collection statistics
    """
    from .gc import garbage_collect

    with open_repo_closing(repo) as r:
        return garbage_collect(r, grace_period=grace_period, dry_run=dry_run)
