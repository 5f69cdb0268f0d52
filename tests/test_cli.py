# test_cli.py -- Tests for the command line interface
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

"""Tests for treegraft.cli."""

import io
import os
import shutil
import tempfile
from unittest.mock import patch

from treegraft import porcelain
from treegraft.cli import format_entry, main
from treegraft.objects import Blob

from . import TestCase


class CliTestCase(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.test_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.test_dir)
        self.repo_path = os.path.join(self.test_dir, "repo.git")
        # Keep main() from attaching handlers to the root logger
        basic_config = patch("logging.basicConfig")
        basic_config.start()
        self.addCleanup(basic_config.stop)

    def run_command(self, *args: str) -> tuple[int | None, bytes, str]:
        """Run a treegraft command.

        Returns: Tuple of (exit code, stdout bytes, stderr text)
        """
        stdout = io.TextIOWrapper(io.BytesIO(), encoding="utf-8")
        stderr = io.StringIO()
        with patch("sys.stdout", stdout), patch("sys.stderr", stderr):
            ret = main(list(args))
        stdout.flush()
        return ret, stdout.buffer.getvalue(), stderr.getvalue()

    def run_in_repo(self, command: str, *args: str) -> tuple[int | None, bytes, str]:
        return self.run_command(command, "-R", self.repo_path, *args)

    def init_repo(self, *args: str) -> None:
        ret, _, stderr = self.run_command("init", *args, self.repo_path)
        self.assertIsNone(ret, stderr)


class MainTests(CliTestCase):
    def test_no_arguments(self) -> None:
        with self.assertLogs("treegraft.cli", "INFO") as cm:
            ret, _, _ = self.run_command()
        self.assertEqual(1, ret)
        self.assertIn("Available commands:", cm.output[0])

    def test_help(self) -> None:
        with self.assertLogs("treegraft.cli", "INFO") as cm:
            ret, _, _ = self.run_command("help")
        self.assertIsNone(ret)
        self.assertTrue(any("put-file" in line for line in cm.output))

    def test_unknown_command(self) -> None:
        ret, _, stderr = self.run_command("frobnicate")
        self.assertEqual(1, ret)
        self.assertEqual("error: no such subcommand: frobnicate\n", stderr)

    def test_not_a_repository(self) -> None:
        ret, _, stderr = self.run_in_repo("list-branches")
        self.assertEqual(1, ret)
        self.assertTrue(stderr.startswith("error: No git repository was found"))

    def test_bad_arguments(self) -> None:
        with patch("sys.stderr", io.StringIO()):
            self.assertRaises(SystemExit, main, ["put-file", "main"])


class InitTests(CliTestCase):
    def test_init(self) -> None:
        with self.assertLogs("treegraft.cli", "INFO") as cm:
            self.init_repo()
        self.assertIn("Initialized empty repository", cm.output[0])
        self.assertTrue(os.path.isdir(os.path.join(self.repo_path, "refs")))
        ret, stdout, _ = self.run_in_repo("list-branches")
        self.assertIsNone(ret)
        self.assertEqual(b"", stdout)

    def test_initial_commit(self) -> None:
        self.init_repo("--initial-commit", "-b", "trunk")
        _, stdout, _ = self.run_in_repo("list-branches")
        self.assertEqual(b"trunk\n", stdout)
        _, stdout, _ = self.run_in_repo("read-file", "trunk", "README.md")
        self.assertEqual(b"Hello World\n", stdout)


class FileCommandTests(CliTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.init_repo()

    def test_put_and_read(self) -> None:
        ret, stdout, _ = self.run_in_repo("put-file", "main", "README.md", "Hello")
        self.assertIsNone(ret)
        sha = stdout.strip()
        self.assertEqual(40, len(sha))
        with porcelain.open_repo_closing(self.repo_path) as r:
            self.assertEqual(sha, r.refs[b"refs/heads/main"])
            self.assertEqual(b"Add README.md", r.get_commit(sha).message)
        _, stdout, _ = self.run_in_repo("read-file", "main", "README.md")
        self.assertEqual(b"Hello", stdout)

    def test_put_from_file(self) -> None:
        source = os.path.join(self.test_dir, "source.txt")
        with open(source, "wb") as f:
            f.write(b"from disk\n")
        self.run_in_repo("put-file", "-m", "Import", "main", "doc.txt", "--file", source)
        _, stdout, _ = self.run_in_repo("read-file", "HEAD", "doc.txt")
        self.assertEqual(b"from disk\n", stdout)
        with porcelain.open_repo_closing(self.repo_path) as r:
            self.assertEqual(
                b"Import", r.get_commit(r.refs[b"refs/heads/main"]).message
            )

    def test_read_binary(self) -> None:
        source = os.path.join(self.test_dir, "image.bin")
        with open(source, "wb") as f:
            f.write(b"\x00\x01\x02")
        self.run_in_repo("put-file", "main", "image.bin", "--file", source)
        with self.assertLogs("treegraft.cli", "INFO") as cm:
            ret, stdout, _ = self.run_in_repo("read-file", "main", "image.bin")
        self.assertIsNone(ret)
        self.assertEqual(b"", stdout)
        self.assertIn("Binary file image.bin not shown", cm.output[0])

    def test_read_directory(self) -> None:
        self.run_in_repo("put-file", "main", "src/a.txt", "a")
        ret, stdout, stderr = self.run_in_repo("read-file", "main", "src")
        self.assertEqual(1, ret)
        self.assertEqual(b"", stdout)
        self.assertEqual("error: src points to a tree, not a file\n", stderr)

    def test_invalid_path(self) -> None:
        ret, _, stderr = self.run_in_repo("put-file", "main", "a/../b", "x")
        self.assertEqual(1, ret)
        self.assertTrue(stderr.startswith("error: invalid tree path"))

    def test_remove(self) -> None:
        self.run_in_repo("put-file", "main", "a.txt", "a")
        self.run_in_repo("put-file", "main", "b.txt", "b")
        ret, stdout, _ = self.run_in_repo("remove-file", "main", "a.txt")
        self.assertIsNone(ret)
        self.assertEqual(41, len(stdout))
        ret, _, stderr = self.run_in_repo("read-file", "main", "a.txt")
        self.assertEqual(1, ret)
        self.assertEqual("error: a.txt not found\n", stderr)

    def test_remove_missing(self) -> None:
        self.run_in_repo("put-file", "main", "a.txt", "a")
        ret, _, stderr = self.run_in_repo("remove-file", "main", "b.txt")
        self.assertEqual(1, ret)
        self.assertEqual("error: b.txt not found\n", stderr)

    def test_list_files(self) -> None:
        self.run_in_repo("put-file", "main", "README.md", "Hello")
        self.run_in_repo("put-file", "main", "src/a.txt", "a")
        ret, stdout, _ = self.run_in_repo("list-files")
        self.assertIsNone(ret)
        lines = stdout.decode("utf-8").splitlines()
        readme = Blob.from_string(b"Hello").id[:7].decode("ascii")
        self.assertEqual(f"100644 blob {readme} README.md", lines[0])
        self.assertTrue(lines[1].startswith("040000 tree "))
        self.assertTrue(lines[1].endswith(" src/"))
        self.assertEqual(2, len(lines))

        _, stdout, _ = self.run_in_repo("list-files", "main", "src")
        a = Blob.from_string(b"a").id[:7].decode("ascii")
        self.assertEqual(f"100644 blob {a} a.txt\n".encode(), stdout)


class FormatEntryTests(TestCase):
    def test_blob(self) -> None:
        self.assertEqual(
            "100755 blob abcdef1 run.sh",
            format_entry(b"run.sh", 0o100755, b"abcdef1234" + b"0" * 30),
        )

    def test_tree(self) -> None:
        self.assertEqual(
            "040000 tree 1234567 docs/",
            format_entry(b"docs", 0o040000, b"1234567" + b"0" * 33),
        )


class BranchCommandTests(CliTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.init_repo("--initial-commit")

    def head(self, branch: bytes = b"main") -> bytes:
        with porcelain.open_repo_closing(self.repo_path) as r:
            return r.refs[b"refs/heads/" + branch]

    def test_create_list_delete(self) -> None:
        ret, stdout, _ = self.run_in_repo("create-branch", "feature")
        self.assertIsNone(ret)
        self.assertEqual(self.head() + b"\n", stdout)
        _, stdout, _ = self.run_in_repo("list-branches")
        self.assertEqual(b"feature\nmain\n", stdout)
        ret, _, _ = self.run_in_repo("delete-branch", "feature")
        self.assertIsNone(ret)
        _, stdout, _ = self.run_in_repo("list-branches")
        self.assertEqual(b"main\n", stdout)

    def test_create_existing(self) -> None:
        ret, _, stderr = self.run_in_repo("create-branch", "main")
        self.assertEqual(1, ret)
        self.assertEqual("error: refs/heads/main already exists\n", stderr)

    def test_delete_missing(self) -> None:
        ret, _, stderr = self.run_in_repo("delete-branch", "nope")
        self.assertEqual(1, ret)
        self.assertEqual("error: branch refs/heads/nope not found\n", stderr)

    def test_delete_head(self) -> None:
        ret, _, stderr = self.run_in_repo("delete-branch", "HEAD")
        self.assertEqual(1, ret)
        self.assertEqual("error: HEAD is not a branch\n", stderr)
        self.assertTrue(os.path.exists(os.path.join(self.repo_path, "HEAD")))

    def _diverge(self) -> None:
        self.run_in_repo("create-branch", "feature")
        self.run_in_repo("put-file", "main", "README.md", "main\n")
        self.run_in_repo("put-file", "feature", "README.md", "feature\n")

    def test_merge(self) -> None:
        self.run_in_repo("create-branch", "feature")
        self.run_in_repo("put-file", "feature", "b.txt", "b")
        ret, stdout, _ = self.run_in_repo("merge", "feature", "main")
        self.assertIsNone(ret)
        self.assertEqual(self.head() + b"\n", stdout)
        _, stdout, _ = self.run_in_repo("read-file", "main", "b.txt")
        self.assertEqual(b"b", stdout)

    def test_merge_already_merged(self) -> None:
        before = self.head()
        self.run_in_repo("create-branch", "feature")
        with self.assertLogs("treegraft.porcelain", "INFO"):
            ret, stdout, _ = self.run_in_repo("merge", "feature", "main")
        self.assertIsNone(ret)
        self.assertEqual(before + b"\n", stdout)

    def test_merge_conflict(self) -> None:
        self._diverge()
        before = self.head()
        ret, _, stderr = self.run_in_repo("merge", "feature", "main")
        self.assertEqual(1, ret)
        self.assertEqual(
            "error: Merge conflict in README.md: both sides changed\n", stderr
        )
        self.assertEqual(before, self.head())

    def test_merge_resolutions(self) -> None:
        self._diverge()
        ret, _, _ = self.run_in_repo(
            "merge", "-m", "Settle README", "feature", "main",
            '{"README.md": "both\\n"}',
        )
        self.assertIsNone(ret)
        _, stdout, _ = self.run_in_repo("read-file", "main", "README.md")
        self.assertEqual(b"both\n", stdout)
        with porcelain.open_repo_closing(self.repo_path) as r:
            self.assertEqual(b"Settle README", r.get_commit(self.head()).message)

    def test_merge_invalid_resolutions(self) -> None:
        self._diverge()
        ret, _, stderr = self.run_in_repo("merge", "feature", "main", "{not json")
        self.assertEqual(1, ret)
        self.assertTrue(stderr.startswith("error: invalid resolutions:"))
        ret, _, stderr = self.run_in_repo("merge", "feature", "main", '["x"]')
        self.assertEqual(1, ret)
        self.assertEqual(
            "error: resolutions must be a JSON object of path to contents\n", stderr
        )

    def test_gc(self) -> None:
        with self.assertLogs("treegraft.cli", "INFO") as cm:
            ret, _, _ = self.run_in_repo("gc", "--dry-run", "--grace-period", "0")
        self.assertIsNone(ret)
        self.assertEqual(
            [
                "Dry run results:",
                "  Pruned 0 unreachable objects",
                "  Freed 0 bytes",
            ],
            [record.getMessage() for record in cm.records],
        )
