# test_config.py -- Tests for reading and writing configuration files
# Copyright (C) 2011 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Tests for reading and writing configuration files."""

import os
import shutil
import tempfile
from io import BytesIO

from treegraft.config import (
    CaseInsensitiveOrderedMultiDict,
    ConfigDict,
    ConfigFile,
    StackedConfig,
    _check_section_name,
    _check_variable_name,
    _escape_value,
    _format_string,
    _parse_string,
    get_xdg_config_home_path,
)

from . import TestCase


class ConfigFileTests(TestCase):
    def from_file(self, text: bytes) -> ConfigFile:
        return ConfigFile.from_file(BytesIO(text))

    def test_empty(self) -> None:
        ConfigFile()

    def test_eq(self) -> None:
        self.assertEqual(ConfigFile(), ConfigFile())

    def test_default_config(self) -> None:
        cf = self.from_file(
            b"""[core]
\trepositoryformatversion = 0
\tfilemode = true
\tbare = true
"""
        )
        self.assertEqual(b"0", cf.get((b"core",), b"repositoryformatversion"))
        self.assertTrue(cf.get_boolean((b"core",), b"bare"))
        self.assertEqual([(b"core",)], list(cf.sections()))

    def test_from_file_empty(self) -> None:
        cf = self.from_file(b"")
        self.assertEqual(ConfigFile(), cf)

    def test_empty_line_before_section(self) -> None:
        cf = self.from_file(b"\n[section]\n")
        self.assertEqual([(b"section",)], list(cf.sections()))

    def test_comment_before_section(self) -> None:
        cf = self.from_file(b"# foo\n[section]\n")
        self.assertEqual([(b"section",)], list(cf.sections()))

    def test_comment_after_section(self) -> None:
        cf = self.from_file(b"[section] # foo\n")
        self.assertEqual([(b"section",)], list(cf.sections()))

    def test_comment_after_variable(self) -> None:
        cf = self.from_file(b"[section]\nbar= foo # a comment\n")
        self.assertEqual(b"foo", cf.get((b"section",), b"bar"))

    def test_comment_character_within_value_string(self) -> None:
        cf = self.from_file(b'[section]\nvalue = "foo#bar"\n')
        self.assertEqual(b"foo#bar", cf.get((b"section",), b"value"))

    def test_quoted_whitespace(self) -> None:
        cf = self.from_file(b'[section]\nvalue = " spaced "\n')
        self.assertEqual(b" spaced ", cf.get((b"section",), b"value"))

    def test_from_file_utf8_bom(self) -> None:
        text = "[core]\nfoo = bär\n".encode("utf-8-sig")
        cf = self.from_file(text)
        self.assertEqual(b"b\xc3\xa4r", cf.get((b"core",), b"foo"))

    def test_from_file_section_case_insensitive_lower(self) -> None:
        cf = self.from_file(b"[cOre]\nfOo = bar\n")
        self.assertEqual(b"bar", cf.get((b"core",), b"foo"))
        self.assertEqual(b"bar", cf.get((b"core",), b"FOO"))

    def test_from_file_with_mixed_quoted(self) -> None:
        cf = self.from_file(b'[core]\nfoo = "bar"la\n')
        self.assertEqual(b"barla", cf.get((b"core",), b"foo"))

    def test_from_file_with_open_quoted(self) -> None:
        self.assertRaises(ValueError, self.from_file, b'[core]\nfoo = "bar\n')

    def test_from_file_with_quotes(self) -> None:
        cf = self.from_file(b'[core]\nfoo = " bar"\n')
        self.assertEqual(b" bar", cf.get((b"core",), b"foo"))

    def test_from_file_with_interrupted_line(self) -> None:
        cf = self.from_file(b"[core]\nfoo = bar\\\nla\n")
        self.assertEqual(b"barla", cf.get((b"core",), b"foo"))

    def test_from_file_unterminated_continuation(self) -> None:
        self.assertRaises(ValueError, self.from_file, b"[core]\nfoo = bar\\\n")

    def test_from_file_with_boolean_setting(self) -> None:
        cf = self.from_file(b"[core]\nfoo\n")
        self.assertEqual(b"true", cf.get((b"core",), b"foo"))
        self.assertTrue(cf.get_boolean((b"core",), b"foo"))

    def test_from_file_subsection(self) -> None:
        cf = self.from_file(b'[branch "main"]\nfoo = bar\n')
        self.assertEqual(b"bar", cf.get((b"branch", b"main"), b"foo"))

    def test_from_file_subsection_keeps_case(self) -> None:
        cf = self.from_file(b'[branch "Main"]\nfoo = bar\n')
        self.assertEqual(b"bar", cf.get((b"branch", b"Main"), b"foo"))
        self.assertRaises(KeyError, cf.get, (b"branch", b"main"), b"foo")

    def test_from_file_dotted_subsection(self) -> None:
        cf = self.from_file(b"[branch.main]\nfoo = bar\n")
        self.assertEqual(b"bar", cf.get((b"branch", b"main"), b"foo"))

    def test_from_file_subsection_invalid(self) -> None:
        self.assertRaises(ValueError, self.from_file, b'[branch "main]\nfoo = bar\n')

    def test_from_file_invalid_section(self) -> None:
        self.assertRaises(ValueError, self.from_file, b"[core\nfoo = bar\n")

    def test_from_file_setting_without_section(self) -> None:
        self.assertRaises(ValueError, self.from_file, b"foo = bar\n")

    def test_from_file_invalid_variable_name(self) -> None:
        self.assertRaises(ValueError, self.from_file, b"[core]\nf_oo = bar\n")

    def test_from_file_multiple_values(self) -> None:
        cf = self.from_file(b"[core]\nfoo = one\nfoo = two\n")
        self.assertEqual(b"two", cf.get((b"core",), b"foo"))

    def test_write_to_file_empty(self) -> None:
        c = ConfigFile()
        f = BytesIO()
        c.write_to_file(f)
        self.assertEqual(b"", f.getvalue())

    def test_write_to_file_section(self) -> None:
        c = ConfigFile()
        c.set((b"core",), b"foo", b"bar")
        f = BytesIO()
        c.write_to_file(f)
        self.assertEqual(b"[core]\n\tfoo = bar\n", f.getvalue())

    def test_write_to_file_subsection(self) -> None:
        c = ConfigFile()
        c.set((b"branch", b"blie"), b"foo", b"bar")
        f = BytesIO()
        c.write_to_file(f)
        self.assertEqual(b'[branch "blie"]\n\tfoo = bar\n', f.getvalue())

    def test_write_preserves_quoting(self) -> None:
        c = ConfigFile()
        c.set((b"core",), b"foo", b" needs # quotes")
        f = BytesIO()
        c.write_to_file(f)
        f.seek(0)
        self.assertEqual(b" needs # quotes", ConfigFile.from_file(f).get(b"core", b"foo"))

    def test_write_to_path(self) -> None:
        tempdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tempdir)
        path = os.path.join(tempdir, "config")
        c = ConfigFile()
        c.set(b"user", b"name", "Jane")
        c.write_to_path(path)
        reread = ConfigFile.from_path(path)
        self.assertEqual(b"Jane", reread.get(b"user", b"name"))
        self.assertEqual(path, reread.path)
        reread.set(b"user", b"email", b"jane@example.com")
        reread.write_to_path()
        self.assertEqual(
            b"jane@example.com", ConfigFile.from_path(path).get(b"user", b"email")
        )

    def test_write_to_path_without_path(self) -> None:
        self.assertRaises(ValueError, ConfigFile().write_to_path)


class ConfigDictTests(TestCase):
    def test_get_set(self) -> None:
        cd = ConfigDict()
        self.assertRaises(KeyError, cd.get, b"foo", b"core")
        cd.set((b"core",), b"foo", b"bla")
        self.assertEqual(b"bla", cd.get((b"core",), b"foo"))
        cd.set((b"core",), b"foo", b"bloe")
        self.assertEqual(b"bloe", cd.get((b"core",), b"foo"))

    def test_get_boolean(self) -> None:
        cd = ConfigDict()
        cd.set((b"core",), b"foo", b"true")
        self.assertTrue(cd.get_boolean((b"core",), b"foo"))
        cd.set((b"core",), b"foo", b"off")
        self.assertFalse(cd.get_boolean((b"core",), b"foo"))
        cd.set((b"core",), b"foo", b"invalid")
        self.assertRaises(ValueError, cd.get_boolean, (b"core",), b"foo")

    def test_get_boolean_default(self) -> None:
        cd = ConfigDict()
        self.assertIsNone(cd.get_boolean((b"core",), b"missing"))
        self.assertTrue(cd.get_boolean((b"core",), b"missing", True))

    def test_set_bool(self) -> None:
        cd = ConfigDict()
        cd.set(b"core", b"bare", True)
        self.assertEqual(b"true", cd.get(b"core", b"bare"))

    def test_str_arguments(self) -> None:
        cd = ConfigDict()
        cd.set("core", "foo", "bar")
        self.assertEqual(b"bar", cd.get((b"core",), b"foo"))

    def test_subsection_falls_back_to_section(self) -> None:
        cd = ConfigDict()
        cd.set((b"core",), b"foo", b"bar")
        self.assertEqual(b"bar", cd.get((b"core", b"sub"), b"foo"))

    def test_remove(self) -> None:
        cd = ConfigDict()
        cd.set(b"core", b"foo", b"bar")
        cd.remove(b"core", b"foo")
        self.assertRaises(KeyError, cd.get, b"core", b"foo")
        self.assertRaises(KeyError, cd.remove, b"core", b"foo")

    def test_items(self) -> None:
        cd = ConfigDict()
        cd.set((b"core",), b"foo", b"bla")
        cd.set((b"core",), b"bar", b"blie")
        self.assertEqual([(b"foo", b"bla"), (b"bar", b"blie")], list(cd.items(b"core")))
        self.assertEqual([], list(cd.items(b"missing")))

    def test_sections(self) -> None:
        cd = ConfigDict()
        cd.set((b"core2",), b"foo", b"bloe")
        self.assertEqual([(b"core2",)], list(cd.sections()))
        self.assertTrue(cd.has_section((b"core2",)))
        self.assertFalse(cd.has_section((b"core",)))


class CaseInsensitiveOrderedMultiDictTests(TestCase):
    def test_get_all(self) -> None:
        d = CaseInsensitiveOrderedMultiDict()
        d[b"Foo"] = b"1"
        d[b"foo"] = b"2"
        self.assertEqual(b"2", d[b"FOO"])
        self.assertEqual([b"1", b"2"], list(d.get_all(b"foo")))
        self.assertEqual([b"Foo"], d.keys())
        self.assertEqual(1, len(d))

    def test_set_replaces(self) -> None:
        d = CaseInsensitiveOrderedMultiDict()
        d[b"foo"] = b"1"
        d[b"foo"] = b"2"
        d.set(b"FOO", b"3")
        self.assertEqual([b"3"], list(d.get_all(b"foo")))

    def test_delitem(self) -> None:
        d = CaseInsensitiveOrderedMultiDict()
        d[b"foo"] = b"1"
        del d[b"FOO"]
        self.assertNotIn(b"foo", d)
        self.assertIsNone(d.get(b"foo"))


class StackedConfigTests(TestCase):
    def test_precedence(self) -> None:
        first = ConfigFile()
        first.set(b"user", b"name", b"First")
        second = ConfigFile()
        second.set(b"user", b"name", b"Second")
        second.set(b"user", b"email", b"second@example.com")
        stacked = StackedConfig([first, second])
        self.assertEqual(b"First", stacked.get(b"user", b"name"))
        self.assertEqual(b"second@example.com", stacked.get(b"user", b"email"))
        self.assertRaises(KeyError, stacked.get, b"user", b"signingkey")
        self.assertEqual([(b"user",)], list(stacked.sections()))

    def test_set_requires_writable(self) -> None:
        self.assertRaises(NotImplementedError, StackedConfig([]).set, b"a", b"b", b"c")
        writable = ConfigFile()
        stacked = StackedConfig([writable], writable=writable)
        stacked.set(b"core", b"foo", b"bar")
        self.assertEqual(b"bar", writable.get(b"core", b"foo"))

    def test_default_backends_empty_home(self) -> None:
        self.assertEqual([], StackedConfig.default_backends())

    def test_default_backends_global(self) -> None:
        tempdir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, tempdir)
        path = os.path.join(tempdir, "gitconfig")
        with open(path, "wb") as f:
            f.write(b"[user]\n\tname = Global\n")
        self.overrideEnv("GIT_CONFIG_GLOBAL", path)
        backends = StackedConfig.default_backends()
        self.assertEqual([path], [b.path for b in backends])
        self.assertEqual(b"Global", StackedConfig.default().get(b"user", b"name"))

    def test_default_backends_home(self) -> None:
        with open(os.path.expanduser("~/.gitconfig"), "wb") as f:
            f.write(b"[user]\n\temail = home@example.com\n")
        self.assertEqual(
            b"home@example.com", StackedConfig.default().get(b"user", b"email")
        )

    def test_xdg_config_home(self) -> None:
        self.overrideEnv("XDG_CONFIG_HOME", "/nonexistent/config")
        self.assertEqual(
            "/nonexistent/config/git/config", get_xdg_config_home_path("git", "config")
        )


class EscapeValueTests(TestCase):
    def test_nothing(self) -> None:
        self.assertEqual(b"foo", _escape_value(b"foo"))

    def test_backslash(self) -> None:
        self.assertEqual(b"foo\\\\", _escape_value(b"foo\\"))

    def test_newline(self) -> None:
        self.assertEqual(b"foo\\n", _escape_value(b"foo\n"))


class FormatStringTests(TestCase):
    def test_quoted(self) -> None:
        self.assertEqual(b'" foo"', _format_string(b" foo"))
        self.assertEqual(b'"\\tfoo"', _format_string(b"\tfoo"))

    def test_not_quoted(self) -> None:
        self.assertEqual(b"foo", _format_string(b"foo"))
        self.assertEqual(b"foo bar", _format_string(b"foo bar"))


class ParseStringTests(TestCase):
    def test_quoted(self) -> None:
        self.assertEqual(b" foo", _parse_string(b'" foo"'))
        self.assertEqual(b"\tfoo", _parse_string(b'"\\tfoo"'))

    def test_not_quoted(self) -> None:
        self.assertEqual(b"foo", _parse_string(b"foo"))
        self.assertEqual(b"foo bar", _parse_string(b"foo bar"))

    def test_nothing(self) -> None:
        self.assertEqual(b"", _parse_string(b""))

    def test_tab(self) -> None:
        self.assertEqual(b"\tbar\t", _parse_string(b"\\tbar\\t"))

    def test_newline(self) -> None:
        self.assertEqual(b"\nbar\t", _parse_string(b"\\nbar\\t\t"))

    def test_quote(self) -> None:
        self.assertEqual(b'"foo"', _parse_string(b'\\"foo\\"'))


class CheckVariableNameTests(TestCase):
    def test_invalid(self) -> None:
        self.assertFalse(_check_variable_name(b"foo "))
        self.assertFalse(_check_variable_name(b"bar,bar"))
        self.assertFalse(_check_variable_name(b"bar.bar"))

    def test_valid(self) -> None:
        self.assertTrue(_check_variable_name(b"FOO"))
        self.assertTrue(_check_variable_name(b"foo"))
        self.assertTrue(_check_variable_name(b"foo-bar"))


class CheckSectionNameTests(TestCase):
    def test_invalid(self) -> None:
        self.assertFalse(_check_section_name(b"foo "))
        self.assertFalse(_check_section_name(b"bar,bar"))

    def test_valid(self) -> None:
        self.assertTrue(_check_section_name(b"FOO"))
        self.assertTrue(_check_section_name(b"foo"))
        self.assertTrue(_check_section_name(b"foo-bar"))
        self.assertTrue(_check_section_name(b"bar.bar"))
