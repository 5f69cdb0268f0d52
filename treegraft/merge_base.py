# merge_base.py -- Find lowest common ancestors of commits
# Copyright (c) 2020 Kevin B. Hendricks, Stratford Ontario Canada
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

"""Implementation of merge-base following the approach of git."""

__all__ = [
    "can_fast_forward",
    "find_merge_base",
]

from collections import deque
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from .objects import Commit, ObjectID

if TYPE_CHECKING:
    from .repo import BaseRepo

# Flags to record state
_ANC_OF_1 = 1  # ancestor of commit 1
_ANC_OF_2 = 2  # ancestor of commit 2
_DNC = 4  # Do Not Consider
_LCA = 8  # potential LCA


def _find_lcas(
    lookup_parents: Callable[[ObjectID], list[ObjectID]],
    c1: ObjectID,
    c2s: Sequence[ObjectID],
) -> list[ObjectID]:
    cands = []
    cstates: dict[ObjectID, int] = {}

    def _has_candidates(wlst: deque[ObjectID]) -> bool:
        return any(not (cstates[cmt] & _DNC) for cmt in wlst)

    # initialize the working list
    wlst: deque[ObjectID] = deque()
    cstates[c1] = _ANC_OF_1
    wlst.append(c1)
    for c2 in c2s:
        cstates[c2] = cstates.get(c2, 0) | _ANC_OF_2
        wlst.append(c2)

    # loop until no other LCA candidates are viable in working list
    # adding any parents to the list in a breadth first manner
    while _has_candidates(wlst):
        cmt = wlst.popleft()
        flags = cstates[cmt]
        if flags & (_ANC_OF_1 | _ANC_OF_2) == (_ANC_OF_1 | _ANC_OF_2):
            # potential common ancestor
            if not (flags & _LCA):
                flags = flags | _LCA
                cstates[cmt] = flags
                cands.append(cmt)
            # mark any parents of this node _DNC as all parents
            # would be one level further removed common ancestors
            flags = flags | _DNC
        for pcmt in lookup_parents(cmt):
            cstates[pcmt] = cstates.get(pcmt, 0) | flags
            wlst.append(pcmt)

    # walk final candidates removing any superseded by _DNC by later lower LCAs
    return [cmt for cmt in cands if not (cstates[cmt] & _DNC)]


def find_merge_base(repo: "BaseRepo", commit_ids: Sequence[ObjectID]) -> list[ObjectID]:
    """Find lowest common ancestors of commit_ids[0] and *any* of commits_ids[1:].

    Args:
      repo: Repository object
      commit_ids: list of commit ids
    Returns:
      list of lowest common ancestor commit_ids; empty if the histories are
      unrelated
    """

    def lookup_parents(commit_id: ObjectID) -> list[ObjectID]:
        commit = repo.object_store[commit_id]
        assert isinstance(commit, Commit)
        return commit.parents

    if not commit_ids:
        return []
    c1 = commit_ids[0]
    if not len(commit_ids) > 1:
        return [c1]
    c2s = commit_ids[1:]
    if c1 in c2s:
        return [c1]
    return _find_lcas(lookup_parents, c1, c2s)


def can_fast_forward(repo: "BaseRepo", c1: ObjectID, c2: ObjectID) -> bool:
    """Is it possible to fast-forward from c1 to c2?

    Args:
      repo: Repository to retrieve objects from
      c1: Commit id for first commit
      c2: Commit id for second commit
    """
    if c1 == c2:
        return True
    return find_merge_base(repo, [c1, c2]) == [c1]
