# utils.py -- Test utilities for treegraft.
# Copyright (C) 2010 Google, Inc.
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

"""Utility functions common to treegraft tests."""

import datetime
import stat
import time
from collections.abc import Mapping, Sequence

from treegraft.object_store import BaseObjectStore
from treegraft.objects import DEFAULT_FILE_MODE, Blob, Commit, ObjectID, Tree

AUTHOR = b"Test Author <test@nodomain.com>"
COMMITTER = b"Test Committer <test@nodomain.com>"
DEFAULT_TIME = int(time.mktime(datetime.datetime(2010, 1, 1).timetuple()))


def make_commit(**attrs: object) -> Commit:
    """Make a Commit object with a default set of members.

    Args:
      attrs: dict of attributes to overwrite from the default values.
    Returns: A newly initialized Commit object.
    """
    all_attrs: dict[str, object] = {
        "author": AUTHOR,
        "author_time": DEFAULT_TIME,
        "author_timezone": 0,
        "committer": COMMITTER,
        "commit_time": DEFAULT_TIME,
        "commit_timezone": 0,
        "message": b"Test message.",
        "parents": [],
        "tree": b"0" * 40,
    }
    all_attrs.update(attrs)
    commit = Commit()
    for name, value in all_attrs.items():
        setattr(commit, name, value)
    return commit


def build_tree(
    object_store: BaseObjectStore, files: Mapping[bytes, bytes]
) -> ObjectID:
    """Store a tree holding the given files.

    Args:
      object_store: Store to add the blobs and trees to
      files: Mapping of slash separated path to file contents
    Returns: Id of the root tree
    """
    root: dict = {}
    for path, content in files.items():
        node = root
        parts = path.split(b"/")
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = content

    def write(node: dict) -> ObjectID:
        tree = Tree()
        for name, value in node.items():
            if isinstance(value, dict):
                tree.add(name, stat.S_IFDIR, write(value))
            else:
                blob = Blob.from_string(value)
                object_store.add_object(blob)
                tree.add(name, DEFAULT_FILE_MODE, blob.id)
        object_store.add_object(tree)
        return tree.id

    return write(root)


def build_commit(
    object_store: BaseObjectStore,
    files: Mapping[bytes, bytes],
    parents: Sequence[ObjectID] = (),
    **attrs: object,
) -> ObjectID:
    """Store a commit of a tree holding the given files.

    Returns: Id of the new commit
    """
    commit = make_commit(
        tree=build_tree(object_store, files), parents=list(parents), **attrs
    )
    object_store.add_object(commit)
    return commit.id
