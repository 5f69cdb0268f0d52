# test_object_store.py -- tests for object_store.py
# Copyright (C) 2008 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Tests for the object store interface."""

import os
import shutil
import stat
import tempfile

from treegraft.errors import NotFoundError, ObjectStoreFailure, TypeMismatchError
from treegraft.object_store import (
    DiskObjectStore,
    MemoryObjectStore,
    iter_tree_contents,
    tree_lookup_path,
)
from treegraft.objects import DEFAULT_FILE_MODE, Blob, Tree

from . import TestCase
from .utils import build_tree, make_commit


class ObjectStoreTests:
    """Tests shared by the memory and disk object stores."""

    store: MemoryObjectStore | DiskObjectStore

    def test_iter(self) -> None:
        self.assertEqual([], list(self.store))

    def test_get_nonexistant(self) -> None:
        self.assertRaises(KeyError, lambda: self.store[b"a" * 40])

    def test_contains_nonexistant(self) -> None:
        self.assertNotIn(b"a" * 40, self.store)

    def test_add_object(self) -> None:
        blob = Blob.from_string(b"yummy data")
        self.store.add_object(blob)
        self.assertIn(blob.id, self.store)
        self.assertEqual([blob.id], list(self.store))
        r = self.store[blob.id]
        self.assertEqual(blob, r)
        self.assertEqual(b"yummy data", r.data)
        self.assertEqual((Blob.type_num, b"yummy data"), self.store.get_raw(blob.id))

    def test_add_object_twice(self) -> None:
        blob = Blob.from_string(b"yummy data")
        self.store.add_object(blob)
        self.store.add_object(Blob.from_string(b"yummy data"))
        self.assertEqual([blob.id], list(self.store))

    def test_add_objects(self) -> None:
        data = [Blob.from_string(b"one"), Blob.from_string(b"two")]
        self.store.add_objects(data)
        self.assertEqual({d.id for d in data}, set(self.store))

    def test_stored_copy_is_independent(self) -> None:
        blob = Blob.from_string(b"original")
        self.store.add_object(blob)
        fetched = self.store[blob.id]
        fetched.data = b"changed"
        self.assertEqual(b"original", self.store[blob.id].data)

    def test_commit_roundtrip(self) -> None:
        tree_id = build_tree(self.store, {b"a": b"content"})
        commit = make_commit(tree=tree_id, message=b"commit")
        self.store.add_object(commit)
        fetched = self.store[commit.id]
        self.assertEqual(tree_id, fetched.tree)
        self.assertEqual(b"commit", fetched.message)

    def test_iter_prefix(self) -> None:
        blob = Blob.from_string(b"prefixed")
        self.store.add_object(blob)
        self.assertEqual([blob.id], list(self.store.iter_prefix(blob.id[:4])))
        self.assertEqual([], list(self.store.iter_prefix(b"zz")))

    def test_delete_loose_object(self) -> None:
        blob = Blob.from_string(b"doomed")
        self.store.add_object(blob)
        self.store.delete_loose_object(blob.id)
        self.assertNotIn(blob.id, self.store)
        self.assertRaises(KeyError, self.store.delete_loose_object, blob.id)

    def test_get_object_mtime(self) -> None:
        blob = Blob.from_string(b"timed")
        self.store.add_object(blob)
        self.assertIsInstance(self.store.get_object_mtime(blob.id), float)
        self.assertRaises(KeyError, self.store.get_object_mtime, b"b" * 40)

    def test_tree_lookup_path(self) -> None:
        blob = Blob.from_string(b"deep")
        tree_id = build_tree(self.store, {b"ad/bd/c": b"deep", b"top": b"x"})
        self.assertEqual(
            (DEFAULT_FILE_MODE, blob.id),
            tree_lookup_path(self.store.__getitem__, tree_id, b"ad/bd/c"),
        )
        mode, sha = tree_lookup_path(self.store.__getitem__, tree_id, b"ad/bd")
        self.assertTrue(stat.S_ISDIR(mode))
        self.assertIsInstance(self.store[sha], Tree)
        self.assertEqual(
            (stat.S_IFDIR, tree_id),
            tree_lookup_path(self.store.__getitem__, tree_id, b""),
        )

    def test_tree_lookup_path_missing(self) -> None:
        tree_id = build_tree(self.store, {b"ad/c": b"x"})
        with self.assertRaises(NotFoundError) as cm:
            tree_lookup_path(self.store.__getitem__, tree_id, b"ad/missing")
        self.assertEqual(b"ad/missing", cm.exception.path)

    def test_tree_lookup_path_through_blob(self) -> None:
        tree_id = build_tree(self.store, {b"file": b"x"})
        with self.assertRaises(TypeMismatchError) as cm:
            tree_lookup_path(self.store.__getitem__, tree_id, b"file/below")
        self.assertEqual(b"file", cm.exception.path)

    def test_iter_tree_contents(self) -> None:
        tree_id = build_tree(
            self.store, {b"a": b"1", b"b/c": b"2", b"b/d/e": b"3", b"f": b"4"}
        )
        self.assertEqual(
            [b"a", b"b/c", b"b/d/e", b"f"],
            [e.path for e in iter_tree_contents(self.store, tree_id)],
        )
        self.assertEqual(
            [b"", b"a", b"b", b"b/c", b"b/d", b"b/d/e", b"f"],
            [
                e.path
                for e in iter_tree_contents(self.store, tree_id, include_trees=True)
            ],
        )

    def test_iter_tree_contents_none(self) -> None:
        self.assertEqual([], list(iter_tree_contents(self.store, None)))


class MemoryObjectStoreTests(ObjectStoreTests, TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = MemoryObjectStore()


class DiskObjectStoreTests(ObjectStoreTests, TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.store_dir)
        self.store = DiskObjectStore.init(self.store_dir)

    def test_loose_object_path(self) -> None:
        blob = Blob.from_string(b"test content\n")
        self.store.add_object(blob)
        path = os.path.join(
            self.store_dir, "d6", "70460b4b4aece5915caf5c68d12f560a9fe3e4"
        )
        self.assertTrue(os.path.isfile(path))
        self.assertEqual(1, self.store.count_loose_objects())

    def test_reopen(self) -> None:
        blob = Blob.from_string(b"persisted")
        self.store.add_object(blob)
        reopened = DiskObjectStore(self.store_dir)
        self.assertEqual(b"persisted", reopened[blob.id].data)

    def test_corrupt_object(self) -> None:
        sha = b"ab" + b"1" * 38
        os.mkdir(os.path.join(self.store_dir, "ab"))
        with open(os.path.join(self.store_dir, "ab", "1" * 38), "wb") as f:
            f.write(b"garbage")
        self.assertRaises(ObjectStoreFailure, lambda: self.store[sha])

    def test_add_object_while_locked(self) -> None:
        blob = Blob.from_string(b"locked")
        path = os.path.join(self.store_dir, blob.id[:2].decode("ascii"))
        os.mkdir(path)
        lock = os.path.join(path, blob.id[2:].decode("ascii") + ".lock")
        open(lock, "wb").close()
        with self.assertRaises(ObjectStoreFailure) as cm:
            self.store.add_object(blob)
        self.assertEqual(blob.id, cm.exception.sha)
        self.assertNotIn(blob.id, self.store)
        self.assertTrue(os.path.exists(lock))

    def test_prune_stale_lock(self) -> None:
        os.mkdir(os.path.join(self.store_dir, "cd"))
        lock = os.path.join(self.store_dir, "cd", "0" * 38 + ".lock")
        open(lock, "wb").close()
        old = os.path.getmtime(lock) - 3 * 24 * 60 * 60
        os.utime(lock, (old, old))
        self.store.prune(grace_period=24 * 60 * 60)
        self.assertFalse(os.path.exists(lock))

    def test_prune_keeps_fresh_lock(self) -> None:
        os.mkdir(os.path.join(self.store_dir, "cd"))
        lock = os.path.join(self.store_dir, "cd", "0" * 38 + ".lock")
        open(lock, "wb").close()
        self.store.prune()
        self.assertTrue(os.path.exists(lock))

    def test_from_config(self) -> None:
        from treegraft.config import ConfigDict

        config = ConfigDict()
        config.set((b"core",), b"compression", b"1")
        store = DiskObjectStore.from_config(self.store_dir, config)
        self.assertEqual(1, store.loose_compression_level)
        self.assertFalse(store.fsync_object_files)
