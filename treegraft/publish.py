# publish.py -- Commit a new tree and move a ref to it
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

"""Publishing new trees.

Every change to a branch goes through the same steps::

  READ_PARENT -> COMPUTE_NEW_TREE -> WRITE_COMMIT -> CAS_REF

The ref is only ever moved by a single compare-and-swap against the value
read in the first step. If another writer moved the ref in the meantime
the swap fails with StaleRefError and nothing is visible; the objects
written up to that point are unreferenced and left for garbage collection.
Retrying is up to the caller.
"""

__all__ = [
    "AdvanceResult",
    "CommitWriter",
    "PublishState",
    "RefUpdater",
    "publish",
]

import enum
import time
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from .errors import NotFoundError, StaleRefError
from .file import FileLocked
from .log_utils import getLogger
from .objects import Commit, ObjectID
from .refs import RefsContainer
from .repo import check_user_identity, get_user_identity

if TYPE_CHECKING:
    from .config import StackedConfig
    from .object_store import BaseObjectStore
    from .repo import BaseRepo

logger = getLogger(__name__)


class AdvanceResult(enum.Enum):
    """Outcome of a compare-and-swap on a ref."""

    OK = "ok"
    STALE = "stale"


class PublishState(enum.Enum):
    """Steps of publishing a change to a ref."""

    READ_PARENT = "read-parent"
    COMPUTE_NEW_TREE = "compute-new-tree"
    WRITE_COMMIT = "write-commit"
    CAS_REF = "cas-ref"


class CommitWriter:
    """Wraps trees in commit objects."""

    def __init__(
        self,
        object_store: "BaseObjectStore",
        config: "StackedConfig | None" = None,
    ) -> None:
        """Initialize CommitWriter.

        Args:
          object_store: Store the commits are written to
          config: Configuration used to find the default identities
        """
        self.object_store = object_store
        self.config = config

    def _identity(self, kind: str) -> bytes:
        config = self.config
        if config is None:
            from .config import StackedConfig

            config = StackedConfig.default()
        return get_user_identity(config, kind=kind)

    def commit(
        self,
        tree: ObjectID,
        parents: Sequence[ObjectID],
        message: bytes,
        *,
        author: bytes | None = None,
        committer: bytes | None = None,
        commit_timestamp: float | None = None,
        commit_timezone: int | None = None,
        author_timestamp: float | None = None,
        author_timezone: int | None = None,
        encoding: bytes | None = None,
    ) -> ObjectID:
        """Create a new commit.

        If not specified, committer and author default to
        get_user_identity(..., 'COMMITTER')
        and get_user_identity(..., 'AUTHOR') respectively.

        Args:
          tree: SHA1 of the root tree
          parents: Parent commits, first parent is the branch being updated
          message: Commit message
          author: Author fullname
          committer: Committer fullname
          commit_timestamp: Commit timestamp (defaults to now)
          commit_timezone: Commit timestamp timezone (defaults to GMT)
          author_timestamp: Author timestamp (defaults to commit
            timestamp)
          author_timezone: Author timestamp timezone
            (defaults to commit timestamp timezone)
          encoding: Encoding
        Returns:
          New commit SHA1
        """
        if len(tree) != 40:
            raise ValueError("tree must be a 40-byte hex sha string")
        c = Commit()
        c.tree = tree
        c.parents = list(parents)
        if committer is None:
            committer = self._identity("COMMITTER")
        check_user_identity(committer)
        c.committer = committer
        if commit_timestamp is None:
            commit_timestamp = time.time()
        c.commit_time = int(commit_timestamp)
        if commit_timezone is None:
            commit_timezone = 0
        c.commit_timezone = commit_timezone
        if author is None:
            author = self._identity("AUTHOR")
        check_user_identity(author)
        c.author = author
        if author_timestamp is None:
            author_timestamp = commit_timestamp
        c.author_time = int(author_timestamp)
        if author_timezone is None:
            author_timezone = commit_timezone
        c.author_timezone = author_timezone
        if encoding is not None:
            c.encoding = encoding
        c.message = message
        self.object_store.add_object(c)
        return c.id


class RefUpdater:
    """Moves refs with a single compare-and-swap."""

    def __init__(self, refs: RefsContainer) -> None:
        self.refs = refs

    def advance(
        self, ref: bytes, expected: ObjectID | None, new: ObjectID
    ) -> AdvanceResult:
        """Point ref at new if it currently points at expected.

        Args:
          ref: Name of the ref to update
          expected: Value the ref must hold; None if it must not exist yet
          new: New value of the ref
        Returns: AdvanceResult.OK if the ref was moved, AdvanceResult.STALE
          if it held something else. A stale result writes nothing.
        """
        try:
            if expected is None:
                ok = self.refs.add_if_new(ref, new)
            else:
                ok = self.refs.set_if_equals(ref, expected, new)
        except FileLocked:
            # Another writer is in the middle of updating this ref.
            ok = False
        if not ok:
            logger.info(
                "%s moved away from %s, not updating",
                ref.decode("utf-8", "replace"),
                (expected or b"(none)").decode("ascii"),
            )
            return AdvanceResult.STALE
        logger.debug(
            "moved %s from %s to %s",
            ref.decode("utf-8", "replace"),
            (expected or b"(none)").decode("ascii"),
            new.decode("ascii"),
        )
        return AdvanceResult.OK


def _enter(state: PublishState, ref: bytes) -> None:
    logger.debug("publish %s: %s", ref.decode("utf-8", "replace"), state.value)


def publish(
    repo: "BaseRepo",
    ref: bytes,
    compute_tree: Callable[[Commit | None], ObjectID],
    message: bytes | Callable[[Commit | None], bytes],
    *,
    extra_parents: Sequence[ObjectID] = (),
    allow_unborn: bool = True,
    author: bytes | None = None,
    committer: bytes | None = None,
    commit_timestamp: float | None = None,
    commit_timezone: int | None = None,
    author_timestamp: float | None = None,
    author_timezone: int | None = None,
) -> ObjectID:
    """Commit a new tree on top of a ref and move the ref to it.

    Args:
      repo: Repository to publish in
      ref: Full name of the ref; symbolic refs are followed
      compute_tree: Called with the commit the ref currently points at
        (None if the ref does not exist yet); returns the new root tree
      message: Commit message, or a callable that is given the same parent
        after compute_tree has run and returns the message
      extra_parents: Parents after the first, e.g. the merged branch
      allow_unborn: Whether the ref may be created by this publish
      author: Author identity, see CommitWriter.commit
      committer: Committer identity, see CommitWriter.commit
      commit_timestamp: Commit time, defaults to now
      commit_timezone: Commit timezone offset in seconds
      author_timestamp: Author time, defaults to the commit time
      author_timezone: Author timezone offset in seconds
    Returns: Id of the new commit, which the ref now points at

    Raises:
      NotFoundError: if the ref does not exist and allow_unborn is False
      StaleRefError: if the ref moved while the change was prepared
    """
    _enter(PublishState.READ_PARENT, ref)
    refnames, parent_id = repo.refs.follow(ref)
    target = refnames[-1]
    if parent_id is None:
        if not allow_unborn:
            raise NotFoundError(ref, f"{ref.decode('utf-8', 'replace')} does not exist")
        parent = None
    else:
        try:
            parent = repo.get_commit(parent_id)
        except KeyError as exc:
            raise NotFoundError(
                ref, f"commit {parent_id.decode('ascii')} is missing"
            ) from exc

    _enter(PublishState.COMPUTE_NEW_TREE, target)
    tree_id = compute_tree(parent)

    _enter(PublishState.WRITE_COMMIT, target)
    if callable(message):
        message = message(parent)
    parents = [parent.id] if parent is not None else []
    parents.extend(extra_parents)
    writer = CommitWriter(repo.object_store, repo.get_config_stack())
    commit_id = writer.commit(
        tree_id,
        parents,
        message,
        author=author,
        committer=committer,
        commit_timestamp=commit_timestamp,
        commit_timezone=commit_timezone,
        author_timestamp=author_timestamp,
        author_timezone=author_timezone,
    )

    _enter(PublishState.CAS_REF, target)
    if RefUpdater(repo.refs).advance(target, parent_id, commit_id) is AdvanceResult.STALE:
        raise StaleRefError(target, parent_id)
    return commit_id
