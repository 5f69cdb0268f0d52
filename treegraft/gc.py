# gc.py -- Reachability based garbage collection
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

"""Git garbage collection implementation.

Objects are never deleted as part of an update. Trees and commits written
by an update that lost its compare-and-swap stay behind unreferenced until
a collection removes them.
"""

__all__ = [
    "DEFAULT_GRACE_PERIOD",
    "GCStats",
    "find_reachable_objects",
    "find_unreachable_objects",
    "garbage_collect",
    "prune_unreachable_objects",
]

import collections
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .log_utils import getLogger
from .object_store import BaseObjectStore
from .objects import Commit, ObjectID, Tree
from .refs import RefsContainer, SymrefLoop

if TYPE_CHECKING:
    from .repo import BaseRepo

logger = getLogger(__name__)

DEFAULT_GRACE_PERIOD = 1209600  # 2 weeks


@dataclass
class GCStats:
    """Statistics from garbage collection."""

    pruned_objects: set[bytes] = field(default_factory=set)
    bytes_freed: int = 0
    objects_before: int = 0
    objects_after: int = 0


def find_reachable_objects(
    object_store: BaseObjectStore,
    refs_container: RefsContainer,
    progress: Callable[[str], None] | None = None,
) -> set[ObjectID]:
    """Find all reachable objects in the repository.

    Args:
        object_store: Object store to search
        refs_container: Reference container
        progress: Optional progress callback

    Returns:
        Set of reachable object SHAs
    """
    reachable = set()
    pending: collections.deque[ObjectID] = collections.deque()

    # Start with all refs
    for ref in refs_container.allkeys():
        try:
            sha = refs_container[ref]  # This follows symbolic refs
        except (KeyError, SymrefLoop):
            logger.warning("broken ref %s", ref.decode("utf-8", "replace"))
            continue
        if sha not in reachable:
            pending.append(sha)
            reachable.add(sha)

    # Walk all reachable objects
    while pending:
        sha = pending.popleft()

        if progress:
            progress(f"Checking object {sha.decode('ascii', 'replace')}")

        try:
            obj = object_store[sha]
        except KeyError:
            continue

        if isinstance(obj, Commit):
            for referenced in [obj.tree, *obj.parents]:
                if referenced not in reachable:
                    pending.append(referenced)
                    reachable.add(referenced)
        elif isinstance(obj, Tree):
            for entry in obj.items():
                if entry.sha not in reachable:
                    pending.append(entry.sha)
                    reachable.add(entry.sha)

    return reachable


def find_unreachable_objects(
    object_store: BaseObjectStore,
    refs_container: RefsContainer,
    progress: Callable[[str], None] | None = None,
) -> set[ObjectID]:
    """Find all unreachable objects in the repository.

    Args:
        object_store: Object store to search
        refs_container: Reference container
        progress: Optional progress callback

    Returns:
        Set of unreachable object SHAs
    """
    reachable = find_reachable_objects(object_store, refs_container, progress)
    return {sha for sha in object_store if sha not in reachable}


def _within_grace_period(
    object_store: BaseObjectStore, sha: ObjectID, grace_period: int | None
) -> bool:
    if grace_period is None:
        return False
    age = time.time() - object_store.get_object_mtime(sha)
    if age < grace_period:
        logger.debug(
            "keeping %s (age: %.0fs < grace period: %ds)",
            sha.decode("ascii"),
            age,
            grace_period,
        )
        return True
    return False


def prune_unreachable_objects(
    object_store: BaseObjectStore,
    refs_container: RefsContainer,
    grace_period: int | None = None,
    dry_run: bool = False,
    progress: Callable[[str], None] | None = None,
) -> tuple[set[ObjectID], int]:
    """Remove unreachable objects from the repository.

    Args:
        object_store: Object store to prune
        refs_container: Reference container
        grace_period: Grace period in seconds (objects newer than this are kept)
        dry_run: If True, only report what would be deleted
        progress: Optional progress callback

    Returns:
        Tuple of (set of pruned object SHAs, total bytes freed)
    """
    unreachable = find_unreachable_objects(
        object_store, refs_container, progress=progress
    )

    pruned = set()
    bytes_freed = 0

    for sha in sorted(unreachable):
        try:
            if _within_grace_period(object_store, sha, grace_period):
                continue
            obj = object_store[sha]
            obj_size = len(obj.as_raw_string())
            if not dry_run:
                object_store.delete_loose_object(sha)
        except KeyError:
            # Object already gone
            continue

        if progress:
            progress(f"Pruning {sha.decode('ascii', 'replace')}")
        logger.debug("pruned %s %s", obj.type_name.decode(), sha.decode("ascii"))
        pruned.add(sha)
        bytes_freed += obj_size

    return pruned, bytes_freed


def garbage_collect(
    repo: "BaseRepo",
    prune: bool = True,
    grace_period: int | None = DEFAULT_GRACE_PERIOD,
    dry_run: bool = False,
    progress: Callable[[str], None] | None = None,
) -> GCStats:
    """Run garbage collection on a repository.

    Args:
        repo: Repository to garbage collect
        prune: Whether to prune unreachable objects
        grace_period: Grace period for pruning in seconds
        dry_run: If True, only report what would be done
        progress: Optional progress callback

    Returns:
        GCStats object with garbage collection statistics
    """
    stats = GCStats()
    object_store = repo.object_store

    stats.objects_before = sum(1 for _ in object_store)

    if prune:
        if progress:
            progress("Finding unreachable objects")
        stats.pruned_objects, stats.bytes_freed = prune_unreachable_objects(
            object_store,
            repo.refs,
            grace_period=grace_period,
            dry_run=dry_run,
            progress=progress,
        )

    if not dry_run:
        # Clean up lock files left behind by interrupted writers
        object_store.prune()

    stats.objects_after = sum(1 for _ in object_store)
    logger.info(
        "%s %d unreachable objects (%d bytes)",
        "would prune" if dry_run else "pruned",
        len(stats.pruned_objects),
        stats.bytes_freed,
    )
    return stats
