# config.py - Reading and writing Git config files
# Copyright (C) 2011-2013 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Reading and writing Git configuration files.

Only the subset of git-config(1) that treegraft reads is supported: plain
sections and quoted subsections, escapes, comments, line continuations and
booleans. Includes are not followed.
"""

__all__ = [
    "CaseInsensitiveOrderedMultiDict",
    "Config",
    "ConfigDict",
    "ConfigFile",
    "StackedConfig",
    "get_xdg_config_home_path",
    "lower_key",
]

import os
import sys
from collections.abc import Iterator
from typing import IO, overload

from .file import GitFile, _GitFile
from .log_utils import getLogger

logger = getLogger(__name__)

Name = bytes
NameLike = bytes | str
Section = tuple[bytes, ...]
SectionLike = bytes | str | tuple[bytes | str, ...]
Value = bytes
ValueLike = bytes | str
ConfigKey = bytes | tuple[bytes, ...]


def lower_key(key: ConfigKey) -> ConfigKey:
    """Convert a config key to lowercase, preserving subsection case.

    Args:
      key: Variable name, or section tuple

    Returns:
      Key with the section or variable name lowercased
    """
    if isinstance(key, bytes):
        return key.lower()
    if isinstance(key, tuple):
        if key:
            return (key[0].lower(), *key[1:])
        return key
    raise TypeError(key)


class CaseInsensitiveOrderedMultiDict:
    """Ordered mapping with case-insensitive keys and multiple values per key.

    Lookups return the last value stored for a key; ``get_all`` returns all
    of them in insertion order.
    """

    def __init__(self) -> None:
        """Initialize an empty CaseInsensitiveOrderedMultiDict."""
        self._real: list[tuple[ConfigKey, object]] = []
        self._keyed: dict[ConfigKey, object] = {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._real!r})"

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, CaseInsensitiveOrderedMultiDict)
            and self._real == other._real
        )

    def __len__(self) -> int:
        """Return the number of unique keys."""
        return len(self._keyed)

    def __contains__(self, key: ConfigKey) -> bool:
        return lower_key(key) in self._keyed

    def __iter__(self) -> Iterator[ConfigKey]:
        """Iterate over the keys as first spelled, without duplicates."""
        seen = set()
        for k, _ in self._real:
            lower = lower_key(k)
            if lower not in seen:
                seen.add(lower)
                yield k

    def keys(self) -> list[ConfigKey]:
        return list(self)

    def items(self) -> list[tuple[ConfigKey, object]]:
        """Return all (key, value) pairs in insertion order."""
        return list(self._real)

    def __setitem__(self, key: ConfigKey, value: object) -> None:
        """Add a value for a key, keeping the existing ones."""
        self._real.append((key, value))
        self._keyed[lower_key(key)] = value

    def set(self, key: ConfigKey, value: object) -> None:
        """Set a value for a key, replacing all existing values."""
        lower = lower_key(key)
        self._real = [(k, v) for k, v in self._real if lower_key(k) != lower]
        self._real.append((key, value))
        self._keyed[lower] = value

    def __delitem__(self, key: ConfigKey) -> None:
        lower = lower_key(key)
        del self._keyed[lower]
        self._real = [(k, v) for k, v in self._real if lower_key(k) != lower]

    def __getitem__(self, key: ConfigKey) -> object:
        return self._keyed[lower_key(key)]

    def get(self, key: ConfigKey, default: object = None) -> object:
        try:
            return self[key]
        except KeyError:
            return default

    def get_all(self, key: ConfigKey) -> Iterator[object]:
        """Get all values for a key in insertion order."""
        lowered_key = lower_key(key)
        for actual, value in self._real:
            if lower_key(actual) == lowered_key:
                yield value

    def section(self, key: ConfigKey) -> "CaseInsensitiveOrderedMultiDict":
        """Return the value for key, adding an empty mapping if it is missing."""
        try:
            ret = self[key]
        except KeyError:
            ret = CaseInsensitiveOrderedMultiDict()
            self[key] = ret
        assert isinstance(ret, CaseInsensitiveOrderedMultiDict)
        return ret


class Config:
    """A Git configuration."""

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Retrieve the contents of a configuration setting.

        Args:
          section: Tuple with section name and optional subsection name
          name: Variable name
        Returns:
          Contents of the setting
        Raises:
          KeyError: if the value is not set
        """
        raise NotImplementedError(self.get)

    @overload
    def get_boolean(
        self, section: SectionLike, name: NameLike, default: bool
    ) -> bool: ...

    @overload
    def get_boolean(self, section: SectionLike, name: NameLike) -> bool | None: ...

    def get_boolean(
        self, section: SectionLike, name: NameLike, default: bool | None = None
    ) -> bool | None:
        """Retrieve a configuration setting as boolean.

        Args:
          section: Tuple with section name and optional subsection name
          name: Name of the setting, including section and possible
            subsection.
          default: Default value if setting is not found

        Returns:
          Contents of the setting
        """
        try:
            value = self.get(section, name)
        except KeyError:
            return default
        if value.lower() in (b"true", b"yes", b"on", b"1"):
            return True
        elif value.lower() in (b"false", b"no", b"off", b"0", b""):
            return False
        raise ValueError(f"not a valid boolean string: {value!r}")

    def set(
        self, section: SectionLike, name: NameLike, value: ValueLike | bool
    ) -> None:
        """Set a configuration value.

        Args:
          section: Tuple with section name and optional subsection name
          name: Name of the configuration value
          value: value of the setting
        """
        raise NotImplementedError(self.set)

    def sections(self) -> Iterator[Section]:
        """Iterate over the sections.

        Returns: Iterator over section tuples
        """
        raise NotImplementedError(self.sections)

    def has_section(self, name: Section) -> bool:
        """Check if a specified section exists."""
        return name in self.sections()


class ConfigDict(Config):
    """Git configuration stored in a dictionary."""

    def __init__(self, encoding: str | None = None) -> None:
        """Create a new ConfigDict."""
        if encoding is None:
            encoding = sys.getdefaultencoding()
        self.encoding = encoding
        self._values = CaseInsensitiveOrderedMultiDict()

    def __repr__(self) -> str:
        """Return string representation of ConfigDict."""
        return f"{self.__class__.__name__}({self._values!r})"

    def __eq__(self, other: object) -> bool:
        """Check equality with another ConfigDict."""
        return isinstance(other, self.__class__) and other._values == self._values

    def _check_section_and_name(
        self, section: SectionLike, name: NameLike
    ) -> tuple[Section, Name]:
        if not isinstance(section, tuple):
            section = (section,)

        checked_section = tuple(
            subsection.encode(self.encoding)
            if not isinstance(subsection, bytes)
            else subsection
            for subsection in section
        )

        if not isinstance(name, bytes):
            name = name.encode(self.encoding)

        return checked_section, name

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Get a configuration value.

        A value missing from a subsection falls back to the plain section.

        Raises:
            KeyError: if the value is not set
        """
        section, name = self._check_section_and_name(section, name)

        if len(section) > 1:
            try:
                return self._values[section][name]  # type: ignore[index]
            except KeyError:
                pass

        return self._values[(section[0],)][name]  # type: ignore[index]

    def set(
        self, section: SectionLike, name: NameLike, value: ValueLike | bool
    ) -> None:
        """Set a configuration value, replacing any previous ones."""
        section, name = self._check_section_and_name(section, name)

        if isinstance(value, bool):
            value = b"true" if value else b"false"

        if not isinstance(value, bytes):
            value = value.encode(self.encoding)

        self._values.section(section).set(name, value)

    def remove(self, section: SectionLike, name: NameLike) -> None:
        """Remove a configuration setting.

        Raises:
            KeyError: If the section or name doesn't exist
        """
        section, name = self._check_section_and_name(section, name)
        del self._values.section(section)[name]

    def items(self, section: SectionLike) -> Iterator[tuple[Name, Value]]:
        """Get items in a section."""
        section_bytes, _ = self._check_section_and_name(section, b"")
        section_dict = self._values.get(section_bytes)
        if section_dict is None:
            return iter([])
        assert isinstance(section_dict, CaseInsensitiveOrderedMultiDict)
        return iter(section_dict.items())  # type: ignore[arg-type]

    def sections(self) -> Iterator[Section]:
        """Get all sections."""
        return iter(self._values.keys())  # type: ignore[arg-type]


def _format_string(value: bytes) -> bytes:
    if (
        value.startswith((b" ", b"\t"))
        or value.endswith((b" ", b"\t"))
        or b"#" in value
        or b";" in value
    ):
        return b'"' + _escape_value(value) + b'"'
    else:
        return _escape_value(value)


_ESCAPE_TABLE = {
    ord(b"\\"): ord(b"\\"),
    ord(b'"'): ord(b'"'),
    ord(b"n"): ord(b"\n"),
    ord(b"t"): ord(b"\t"),
    ord(b"b"): ord(b"\b"),
}
_COMMENT_CHARS = [ord(b"#"), ord(b";")]
_WHITESPACE_CHARS = [ord(b"\t"), ord(b" ")]


def _parse_string(value: bytes) -> bytes:
    value_array = bytearray(value.strip())
    ret = bytearray()
    whitespace = bytearray()
    in_quotes = False
    i = 0
    while i < len(value_array):
        c = value_array[i]
        if c == ord(b"\\"):
            i += 1
            if whitespace:
                ret.extend(whitespace)
                whitespace = bytearray()
            if i >= len(value_array):
                # Backslash at end of string is kept as is
                ret.append(ord(b"\\"))
            elif value_array[i] in _ESCAPE_TABLE:
                ret.append(_ESCAPE_TABLE[value_array[i]])
            else:
                # Unknown escape: keep the backslash, reprocess the next char
                ret.append(ord(b"\\"))
                i -= 1
        elif c == ord(b'"'):
            in_quotes = not in_quotes
        elif c in _COMMENT_CHARS and not in_quotes:
            # the rest of the line is a comment
            break
        elif c in _WHITESPACE_CHARS:
            whitespace.append(c)
        else:
            if whitespace:
                ret.extend(whitespace)
                whitespace = bytearray()
            ret.append(c)
        i += 1

    if in_quotes:
        raise ValueError("missing end quote")

    return bytes(ret)


def _escape_value(value: bytes) -> bytes:
    """Escape a value."""
    value = value.replace(b"\\", b"\\\\")
    value = value.replace(b"\n", b"\\n")
    value = value.replace(b"\t", b"\\t")
    value = value.replace(b'"', b'\\"')
    return value


def _check_variable_name(name: bytes) -> bool:
    return bool(name) and all(c.isalnum() or c == b"-" for c in _iter_bytes(name))


def _check_section_name(name: bytes) -> bool:
    return bool(name) and all(
        c.isalnum() or c in (b"-", b".") for c in _iter_bytes(name)
    )


def _iter_bytes(value: bytes) -> Iterator[bytes]:
    for i in range(len(value)):
        yield value[i : i + 1]


def _strip_comments(line: bytes) -> bytes:
    string_open = False
    for i, character in enumerate(line):
        # Comment characters outside balanced quotes denote comment start
        if character == ord(b'"'):
            string_open = not string_open
        elif not string_open and character in _COMMENT_CHARS:
            return line[:i]
    return line


def _continues(value: bytes) -> bool:
    """Check whether a raw value ends with an unescaped backslash."""
    content = value.rstrip(b"\r\n")
    backslashes = len(content) - len(content.rstrip(b"\\"))
    return backslashes % 2 == 1


def _parse_section_header_line(line: bytes) -> tuple[Section, bytes]:
    # Parse section header ("[bla]")
    line = _strip_comments(line).rstrip()
    in_quotes = False
    escaped = False
    for i, c in enumerate(line):
        if escaped:
            escaped = False
            continue
        if c == ord(b'"'):
            in_quotes = not in_quotes
        if c == ord(b"\\"):
            escaped = True
        if c == ord(b"]") and not in_quotes:
            last = i
            break
    else:
        raise ValueError("expected trailing ]")
    pts = line[1:last].split(b" ", 1)
    line = line[last + 1 :]
    section: Section
    if not _check_section_name(pts[0]):
        raise ValueError(f"invalid section name {pts[0]!r}")
    if len(pts) == 2:
        if pts[1][:1] == b'"' and pts[1][-1:] == b'"':
            section = (pts[0], pts[1][1:-1])
        else:
            raise ValueError(f"Invalid subsection {pts[1]!r}")
    else:
        pts = pts[0].split(b".", 1)
        if len(pts) == 2:
            section = (pts[0], pts[1])
        else:
            section = (pts[0],)
    return section, line


class ConfigFile(ConfigDict):
    """A Git configuration file, like a repository config or ~/.gitconfig."""

    def __init__(self, encoding: str | None = None) -> None:
        """Initialize an empty ConfigFile."""
        super().__init__(encoding=encoding)
        self.path: str | None = None

    @classmethod
    def from_file(cls, f: IO[bytes]) -> "ConfigFile":
        """Read configuration from a file-like object.

        Raises:
          ValueError: if the file is not valid git config syntax
        """
        ret = cls()
        section: Section | None = None
        setting: bytes | None = None
        continuation = b""
        for lineno, line in enumerate(f.readlines()):
            if lineno == 0 and line.startswith(b"\xef\xbb\xbf"):
                line = line[3:]
            if setting is not None:
                # continuation line
                continuation += line
                if _continues(line):
                    continuation = continuation.rstrip(b"\r\n")[:-1]
                    continue
                assert section is not None
                ret._values.section(section)[setting] = _parse_string(continuation)
                setting = None
                continue
            line = line.lstrip()
            if line[:1] == b"[":
                section, line = _parse_section_header_line(line)
                ret._values.section(section)
            if _strip_comments(line).strip() == b"":
                continue
            if section is None:
                raise ValueError(f"setting {line!r} without section")
            try:
                name, value = line.split(b"=", 1)
            except ValueError:
                name = line
                value = b"true"
            name = name.strip()
            if not _check_variable_name(name):
                raise ValueError(f"invalid variable name {name!r}")
            if _continues(value):
                setting = name
                continuation = value.rstrip(b"\r\n")[:-1]
            else:
                ret._values.section(section)[name] = _parse_string(value)
        if setting is not None:
            raise ValueError("unterminated line continuation")
        return ret

    @classmethod
    def from_path(cls, path: str | os.PathLike[str]) -> "ConfigFile":
        """Read configuration from a file on disk."""
        abs_path = os.fspath(path)
        with GitFile(abs_path, "rb") as f:
            ret = cls.from_file(f)
        ret.path = abs_path
        return ret

    def write_to_path(self, path: str | os.PathLike[str] | None = None) -> None:
        """Write configuration to a file on disk."""
        if path is None:
            if self.path is None:
                raise ValueError("No path specified and no default path available")
            path = self.path
        with GitFile(path, "wb") as f:
            self.write_to_file(f)

    def write_to_file(self, f: IO[bytes] | _GitFile) -> None:
        """Write configuration to a file-like object."""
        for section, values in self._values.items():
            assert isinstance(section, tuple)
            assert isinstance(values, CaseInsensitiveOrderedMultiDict)
            if len(section) == 1:
                f.write(b"[" + section[0] + b"]\n")
            else:
                f.write(b"[" + section[0] + b' "' + section[1] + b'"]\n')
            for key, value in values.items():
                assert isinstance(key, bytes) and isinstance(value, bytes)
                f.write(b"\t" + key + b" = " + _format_string(value) + b"\n")


def get_xdg_config_home_path(*path_segments: str) -> str:
    """Get a path in the XDG config home directory.

    Args:
      *path_segments: Path segments to join to the XDG config home

    Returns:
      Full path in XDG config home directory
    """
    xdg_config_home = os.environ.get(
        "XDG_CONFIG_HOME",
        os.path.expanduser("~/.config/"),
    )
    return os.path.join(xdg_config_home, *path_segments)


class StackedConfig(Config):
    """Configuration which reads from multiple config files."""

    def __init__(
        self, backends: list[ConfigFile], writable: ConfigFile | None = None
    ) -> None:
        """Initialize a StackedConfig.

        Args:
          backends: List of config files to read from (in order of precedence)
          writable: Optional config file to write changes to
        """
        self.backends = backends
        self.writable = writable

    def __repr__(self) -> str:
        """Return string representation of StackedConfig."""
        return f"<{self.__class__.__name__} for {self.backends!r}>"

    @classmethod
    def default(cls) -> "StackedConfig":
        """Create a StackedConfig with the user and system config files."""
        return cls(cls.default_backends())

    @classmethod
    def default_backends(cls) -> list[ConfigFile]:
        """Retrieve the default configuration.

        See git-config(1) for details on the files searched.
        """
        paths = []

        try:
            paths.append(os.environ["GIT_CONFIG_GLOBAL"])
        except KeyError:
            paths.append(os.path.expanduser("~/.gitconfig"))
            paths.append(get_xdg_config_home_path("git", "config"))

        try:
            paths.append(os.environ["GIT_CONFIG_SYSTEM"])
        except KeyError:
            if "GIT_CONFIG_NOSYSTEM" not in os.environ:
                paths.append("/etc/gitconfig")

        logger.debug("Loading gitconfig from paths: %s", paths)

        backends = []
        for path in paths:
            try:
                cf = ConfigFile.from_path(path)
                logger.debug("Successfully loaded gitconfig from: %s", path)
            except FileNotFoundError:
                logger.debug("Gitconfig file not found: %s", path)
                continue
            backends.append(cf)
        return backends

    def get(self, section: SectionLike, name: NameLike) -> Value:
        """Get value from the first backend that has it."""
        if not isinstance(section, tuple):
            section = (section,)
        for backend in self.backends:
            try:
                return backend.get(section, name)
            except KeyError:
                pass
        raise KeyError(name)

    def set(
        self, section: SectionLike, name: NameLike, value: ValueLike | bool
    ) -> None:
        """Set value in the writable backend."""
        if self.writable is None:
            raise NotImplementedError(self.set)
        return self.writable.set(section, name, value)

    def sections(self) -> Iterator[Section]:
        """Get all sections."""
        seen = set()
        for backend in self.backends:
            for section in backend.sections():
                if section not in seen:
                    seen.add(section)
                    yield section
