# objects.py -- Access to base git objects
# Copyright (C) 2007 James Westby <jw+debian@jameswestby.net>
# Copyright (C) 2008-2013 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""Access to base git objects.

Blobs, trees and commits are immutable once stored; their identity is the
sha1 of the git loose-object encoding, so identical content always yields
an identical id.
"""

__all__ = [
    "EMPTY_TREE_ID",
    "ZERO_SHA",
    "Blob",
    "Commit",
    "ObjectID",
    "ShaFile",
    "Tree",
    "TreeEntry",
    "format_timezone",
    "hex_to_filename",
    "hex_to_sha",
    "object_class",
    "parse_timezone",
    "parse_tree",
    "serialize_tree",
    "sha_to_hex",
    "sorted_tree_items",
    "valid_hexsha",
]

import binascii
import os
import posixpath
import stat
import zlib
from collections.abc import Iterable, Iterator
from hashlib import sha1
from typing import NamedTuple

from .errors import (
    NotBlobError,
    NotCommitError,
    NotTreeError,
    ObjectFormatException,
)

ObjectID = bytes

ZERO_SHA = b"0" * 40

EMPTY_TREE_ID = b"4b825dc642cb6eb9a060e54bf8d69288fbee4904"

# Header fields for commits
_TREE_HEADER = b"tree"
_PARENT_HEADER = b"parent"
_AUTHOR_HEADER = b"author"
_COMMITTER_HEADER = b"committer"
_ENCODING_HEADER = b"encoding"

# Modes git writes for tree entries
DEFAULT_FILE_MODE = 0o100644
EXECUTABLE_FILE_MODE = 0o100755
TREE_MODE = stat.S_IFDIR


def _decompress(string: bytes) -> bytes:
    dcomp = zlib.decompressobj()
    dcomped = dcomp.decompress(string)
    dcomped += dcomp.flush()
    return dcomped


def sha_to_hex(sha: bytes) -> ObjectID:
    """Takes a string and returns the hex of the sha within."""
    hexsha = binascii.hexlify(sha)
    assert len(hexsha) == 40, f"Incorrect length of sha1 string: {hexsha!r}"
    return hexsha


def hex_to_sha(hex: bytes | str) -> bytes:
    """Takes a hex sha and returns a binary sha."""
    assert len(hex) == 40, f"Incorrect length of hexsha: {hex!r}"
    try:
        return binascii.unhexlify(hex)
    except TypeError as exc:
        if not isinstance(hex, bytes):
            raise
        raise ValueError(exc.args[0]) from exc


def valid_hexsha(hex: bytes | str) -> bool:
    """Check whether a value is a 40 character hex sha."""
    if len(hex) != 40:
        return False
    try:
        binascii.unhexlify(hex)
    except (TypeError, binascii.Error):
        return False
    else:
        return True


def hex_to_filename(path: str, hex: bytes) -> str:
    """Takes a hex sha and returns its filename relative to the given path."""
    hex_str = hex.decode("ascii")
    return os.path.join(path, hex_str[:2], hex_str[2:])


def object_class(type: bytes | int) -> type["ShaFile"] | None:
    """Get the object class corresponding to the given type.

    Args:
      type: Either a type name string or a numeric type.
    Returns: The ShaFile subclass corresponding to the given type, or None if
        type is not a valid type name/number.
    """
    return _TYPE_MAP.get(type, None)


def check_hexsha(hex: bytes, error_msg: str) -> None:
    """Check if a string is a valid hex sha string.

    Args:
      hex: Hex string to check
      error_msg: Error message to use in exception
    Raises:
      ObjectFormatException: Raised when the string is not valid
    """
    if not valid_hexsha(hex):
        raise ObjectFormatException(f"{error_msg} {hex!r}")


def check_identity(identity: bytes | None, error_msg: str) -> None:
    """Check if the specified identity is valid.

    This will raise an exception if the identity is not valid.

    Args:
      identity: Identity string
      error_msg: Error message to use in exception
    """
    if not identity:
        raise ObjectFormatException(error_msg)
    email_start = identity.find(b"<")
    email_end = identity.find(b">")
    if not all(
        [
            email_start >= 1,
            identity[email_start - 1] == b" "[0],
            identity.find(b"<", email_start + 1) == -1,
            email_end == len(identity) - 1,
            b"\0" not in identity,
            b"\n" not in identity,
        ]
    ):
        raise ObjectFormatException(error_msg)


def git_line(*items: bytes) -> bytes:
    """Formats items into a space separated line."""
    return b" ".join(items) + b"\n"


def format_timezone(offset: int, unnecessary_negative_timezone: bool = False) -> bytes:
    """Format a timezone for Git serialization.

    Args:
      offset: Timezone offset as seconds difference to UTC
      unnecessary_negative_timezone: Whether to use a minus sign for
        UTC or positive timezones (-0000 and --700 rather than +0000 / +0700).
    """
    if offset % 60 != 0:
        raise ValueError("Unable to handle non-minute offset.")
    if offset < 0 or unnecessary_negative_timezone:
        sign = "-"
        offset = -offset
    else:
        sign = "+"
    return ("%c%02d%02d" % (sign, offset // 3600, (offset // 60) % 60)).encode("ascii")


def parse_timezone(text: bytes) -> tuple[int, bool]:
    """Parse a timezone text fragment (e.g. '+0100').

    Args:
      text: Text to parse.
    Returns: Tuple with timezone as seconds difference to UTC
        and a boolean indicating whether this was a UTC timezone
        prefixed with a negative sign (-0000).
    """
    # cgit parses the first character as the sign, and the rest
    #  as an integer (using strtol), which could also be negative.
    #  We do the same for compatibility. See #697828.
    if text[:1] not in b"+-":
        raise ValueError(f"Timezone must start with + or - ({text!r})")
    sign = text[:1]
    offset = int(text[1:])
    if sign == b"-":
        offset = -offset
    unnecessary_negative_timezone = offset >= 0 and sign == b"-"
    signum = -1 if offset < 0 else 1
    offset = abs(offset)
    hours = int(offset / 100)
    minutes = offset % 100
    return (
        signum * (hours * 3600 + minutes * 60),
        unnecessary_negative_timezone,
    )


def _format_person(identity: bytes, time: int, timezone: int) -> bytes:
    return identity + b" " + str(time).encode("ascii") + b" " + format_timezone(timezone)


def _parse_person(value: bytes) -> tuple[bytes, int, int]:
    try:
        identity, time_text, tz_text = value.rsplit(b" ", 2)
        return identity, int(time_text), parse_timezone(tz_text)[0]
    except ValueError as exc:
        raise ObjectFormatException(f"invalid person line {value!r}") from exc


def serializable_property(name: str, docstring: str | None = None) -> property:
    """A property that helps tracking whether serialization is necessary."""

    def set(obj: "ShaFile", value: object) -> None:
        setattr(obj, "_" + name, value)
        obj._needs_serialization = True

    def get(obj: "ShaFile") -> object:
        return getattr(obj, "_" + name)

    return property(get, set, doc=docstring)


class FixedSha:
    """SHA object that behaves like hashlib's but is given a fixed value."""

    __slots__ = ("_hexsha", "_sha")

    def __init__(self, hexsha: bytes) -> None:
        """Initialize FixedSha with a fixed SHA value.

        Args:
            hexsha: Hex SHA value as bytes
        """
        if not isinstance(hexsha, bytes):
            raise TypeError(f"Expected bytes for hexsha, got {hexsha!r}")
        self._hexsha = hexsha
        self._sha = hex_to_sha(hexsha)

    def digest(self) -> bytes:
        """Return the raw SHA digest."""
        return self._sha

    def hexdigest(self) -> str:
        """Return the hex SHA digest."""
        return self._hexsha.decode("ascii")


class ShaFile:
    """A git SHA file."""

    __slots__ = ("_chunked_text", "_needs_serialization", "_sha")

    type_name: bytes
    type_num: int
    _needs_serialization: bool
    _chunked_text: list[bytes] | None
    _sha: FixedSha | None

    def __init__(self) -> None:
        """Initialize a ShaFile."""
        self._sha = None
        self._chunked_text = []
        self._needs_serialization = True

    @classmethod
    def _parse_legacy_object(cls, data: bytes) -> "ShaFile":
        """Parse a zlib-compressed loose object, header included."""
        try:
            text = _decompress(data)
        except zlib.error as exc:
            raise ObjectFormatException(f"corrupt loose object: {exc}") from exc
        header_end = text.find(b"\0")
        if header_end < 0:
            raise ObjectFormatException("Invalid object header, no \\0")
        try:
            type_name, size = text[:header_end].split(b" ", 1)
            length = int(size)
        except ValueError as exc:
            raise ObjectFormatException(f"Invalid object header: {exc}") from exc
        obj_class = object_class(type_name)
        if obj_class is None:
            raise ObjectFormatException(f"Not a known type: {type_name!r}")
        body = text[header_end + 1 :]
        if len(body) != length:
            raise ObjectFormatException(
                f"Object length mismatch: header says {length}, got {len(body)}"
            )
        obj = obj_class()
        obj.set_raw_chunks([body])
        return obj

    def as_legacy_object_chunks(self, compression_level: int = -1) -> Iterator[bytes]:
        """Return chunks representing the object in the experimental format.

        Returns: List of strings
        """
        compobj = zlib.compressobj(compression_level)
        yield compobj.compress(self._header())
        for chunk in self.as_raw_chunks():
            yield compobj.compress(chunk)
        yield compobj.flush()

    def as_legacy_object(self, compression_level: int = -1) -> bytes:
        """Return string representing the object in the experimental format."""
        return b"".join(
            self.as_legacy_object_chunks(compression_level=compression_level)
        )

    def as_raw_chunks(self) -> list[bytes]:
        """Return chunks with serialization of the object.

        Returns: List of strings, not necessarily one per line
        """
        if self._needs_serialization:
            self._sha = None
            self._chunked_text = self._serialize()
            self._needs_serialization = False
        assert self._chunked_text is not None
        return self._chunked_text

    def as_raw_string(self) -> bytes:
        """Return raw string with serialization of the object.

        Returns: String object
        """
        return b"".join(self.as_raw_chunks())

    def __bytes__(self) -> bytes:
        """Return raw string serialization of this object."""
        return self.as_raw_string()

    def __hash__(self) -> int:
        """Return unique hash for this object."""
        return hash(self.id)

    def set_raw_string(self, text: bytes, sha: ObjectID | None = None) -> None:
        """Set the contents of this object from a serialized string."""
        if not isinstance(text, bytes):
            raise TypeError(f"Expected bytes for text, got {text!r}")
        self.set_raw_chunks([text], sha)

    def set_raw_chunks(self, chunks: list[bytes], sha: ObjectID | None = None) -> None:
        """Set the contents of this object from a list of chunks."""
        self._chunked_text = chunks
        self._deserialize(chunks)
        if sha is None:
            self._sha = None
        else:
            self._sha = FixedSha(sha)
        self._needs_serialization = False

    @classmethod
    def from_path(cls, path: str | bytes, sha: ObjectID | None = None) -> "ShaFile":
        """Open a SHA file from disk."""
        with open(path, "rb") as f:
            obj = cls._parse_legacy_object(f.read())
        if sha is not None:
            obj._sha = FixedSha(sha)
        return obj

    @staticmethod
    def from_raw_string(
        type_num: int, string: bytes, sha: ObjectID | None = None
    ) -> "ShaFile":
        """Creates an object of the indicated type from the raw string given.

        Args:
          type_num: The numeric type of the object.
          string: The raw uncompressed contents.
          sha: Optional known sha for the object
        """
        cls = object_class(type_num)
        if cls is None:
            raise AssertionError(f"unsupported class type num: {type_num}")
        obj = cls()
        obj.set_raw_string(string, sha)
        return obj

    def check(self) -> None:
        """Check this object for internal consistency.

        Raises:
          ObjectFormatException: if the object is malformed in some way
        """
        # Reparsing from the serialized form catches a wide range of errors
        try:
            self._deserialize(self.as_raw_chunks())
        except (ValueError, IndexError) as exc:
            raise ObjectFormatException(exc) from exc

    def _header(self) -> bytes:
        return self.type_name + b" " + str(self.raw_length()).encode("ascii") + b"\0"

    def raw_length(self) -> int:
        """Returns the length of the raw string of this object."""
        return sum(map(len, self.as_raw_chunks()))

    def sha(self) -> FixedSha:
        """The SHA1 object that is the name of this object."""
        if self._sha is None or self._needs_serialization:
            new_sha = sha1()
            new_sha.update(self._header())
            for chunk in self.as_raw_chunks():
                new_sha.update(chunk)
            self._sha = FixedSha(new_sha.hexdigest().encode("ascii"))
        return self._sha

    def copy(self) -> "ShaFile":
        """Create a new copy of this SHA1 object from its raw string."""
        obj_class = object_class(self.type_num)
        assert obj_class is not None
        return obj_class.from_raw_string(self.type_num, self.as_raw_string(), self.id)

    @property
    def id(self) -> ObjectID:
        """The hex SHA of this object."""
        return self.sha().hexdigest().encode("ascii")

    def __repr__(self) -> str:
        """Return string representation of this object."""
        return f"<{self.__class__.__name__} {self.id!r}>"

    def __ne__(self, other: object) -> bool:
        """Check whether this object does not match the other."""
        return not isinstance(other, ShaFile) or self.id != other.id

    def __eq__(self, other: object) -> bool:
        """Return True if the SHAs of the two objects match."""
        return isinstance(other, ShaFile) and self.id == other.id

    def __lt__(self, other: object) -> bool:
        """Return whether SHA of this object is less than the other."""
        if not isinstance(other, ShaFile):
            raise TypeError
        return self.id < other.id

    def _deserialize(self, chunks: list[bytes]) -> None:
        raise NotImplementedError(self._deserialize)

    def _serialize(self) -> list[bytes]:
        raise NotImplementedError(self._serialize)


class Blob(ShaFile):
    """A Git Blob object."""

    __slots__ = ()

    type_name = b"blob"
    type_num = 3

    _chunked_text: list[bytes]

    def __init__(self) -> None:
        """Initialize a new Blob object."""
        super().__init__()
        self._chunked_text = []
        self._needs_serialization = False

    def _get_data(self) -> bytes:
        return self.as_raw_string()

    def _set_data(self, data: bytes) -> None:
        self.set_raw_string(data)

    data = property(
        _get_data, _set_data, doc="The text contained within the blob object."
    )

    def _get_chunked(self) -> list[bytes]:
        return self._chunked_text

    def _set_chunked(self, chunks: list[bytes]) -> None:
        self._chunked_text = chunks
        self._sha = None

    def _serialize(self) -> list[bytes]:
        return self._chunked_text

    def _deserialize(self, chunks: list[bytes]) -> None:
        self._chunked_text = chunks

    chunked = property(
        _get_chunked,
        _set_chunked,
        doc="The text in the blob object, as chunks (not necessarily lines)",
    )

    @classmethod
    def from_string(cls, string: bytes) -> "Blob":
        """Create a blob from a string."""
        blob = cls()
        blob.data = string
        return blob

    @classmethod
    def from_path(cls, path: str | bytes, sha: ObjectID | None = None) -> "Blob":
        """Read a blob from a file on disk."""
        blob = ShaFile.from_path(path, sha)
        if not isinstance(blob, cls):
            raise NotBlobError(blob.id)
        return blob


class TreeEntry(NamedTuple):
    """Named tuple encapsulating a single tree entry."""

    path: bytes
    mode: int
    sha: ObjectID

    def in_path(self, path: bytes) -> "TreeEntry":
        """Return a copy of this entry with the given path prepended."""
        if not isinstance(path, bytes):
            raise TypeError(f"Expected bytes for path, got {path!r}")
        return TreeEntry(
            posixpath.join(path, self.path) if path else self.path, self.mode, self.sha
        )

    @property
    def is_tree(self) -> bool:
        """Whether this entry names a subtree."""
        return stat.S_ISDIR(self.mode)


def parse_tree(text: bytes, strict: bool = False) -> Iterator[tuple[bytes, int, bytes]]:
    """Parse a tree text.

    Args:
      text: Serialized text to parse
      strict: If True, enforce strict validation
    Returns: iterator of tuples of (name, mode, sha)

    Raises:
      ObjectFormatException: if the object was malformed in some way
    """
    count = 0
    length = len(text)
    while count < length:
        mode_end = text.index(b" ", count)
        mode_text = text[count:mode_end]
        if strict and mode_text.startswith(b"0"):
            raise ObjectFormatException(f"Invalid mode {mode_text!r}")
        try:
            mode = int(mode_text, 8)
        except ValueError as exc:
            raise ObjectFormatException(f"Invalid mode {mode_text!r}") from exc
        name_end = text.index(b"\0", mode_end)
        name = text[mode_end + 1 : name_end]
        count = name_end + 21
        sha = text[name_end + 1 : count]
        if len(sha) != 20:
            raise ObjectFormatException("Sha has invalid length")
        hexsha = sha_to_hex(sha)
        yield (name, mode, hexsha)


def serialize_tree(items: Iterable[tuple[bytes, int, bytes]]) -> Iterator[bytes]:
    """Serialize the items in a tree to a text.

    Args:
      items: Sorted iterable over (name, mode, sha) tuples
    Returns: Serialized tree text as chunks
    """
    for name, mode, hexsha in items:
        yield (
            (f"{mode:04o}").encode("ascii") + b" " + name + b"\0" + hex_to_sha(hexsha)
        )


def key_entry(entry: tuple[bytes, tuple[int, bytes]]) -> bytes:
    """Sort key for tree entry.

    Args:
      entry: (name, (mode, sha)) tuple
    """
    (name, (mode, _sha)) = entry
    if stat.S_ISDIR(mode):
        name += b"/"
    return name


def key_entry_name_order(entry: tuple[bytes, tuple[int, bytes]]) -> bytes:
    """Sort key for tree entry in name order."""
    return entry[0]


def sorted_tree_items(
    entries: dict[bytes, tuple[int, bytes]], name_order: bool
) -> Iterator[TreeEntry]:
    """Iterate over a tree entries dictionary.

    Args:
      name_order: If True, iterate entries in order of their name. If
        False, iterate entries in tree order, that is, treat subtree entries as
        having '/' appended.
      entries: Dictionary mapping names to (mode, sha) tuples
    Returns: Iterator over (name, mode, hexsha)
    """
    key_func = key_entry_name_order if name_order else key_entry
    for name, entry in sorted(entries.items(), key=key_func):
        mode, hexsha = entry
        mode = int(mode)
        if not isinstance(hexsha, bytes):
            raise TypeError(f"Expected bytes for SHA, got {hexsha!r}")
        yield TreeEntry(name, mode, hexsha)


class Tree(ShaFile):
    """A Git tree object."""

    type_name = b"tree"
    type_num = 2

    __slots__ = "_entries"

    def __init__(self) -> None:
        """Initialize an empty Tree."""
        super().__init__()
        self._entries: dict[bytes, tuple[int, bytes]] = {}

    @classmethod
    def from_path(cls, path: str | bytes, sha: ObjectID | None = None) -> "Tree":
        """Read a tree from a file on disk."""
        tree = ShaFile.from_path(path, sha)
        if not isinstance(tree, cls):
            raise NotTreeError(tree.id)
        return tree

    def __contains__(self, name: bytes) -> bool:
        """Check if name exists in tree."""
        return name in self._entries

    def __getitem__(self, name: bytes) -> tuple[int, ObjectID]:
        """Get tree entry by name."""
        return self._entries[name]

    def __setitem__(self, name: bytes, value: tuple[int, ObjectID]) -> None:
        """Set a tree entry by name.

        Args:
          name: The name of the entry, as a string.
          value: A tuple of (mode, hexsha), where mode is the mode of the
            entry as an integral type and hexsha is the hex SHA of the entry as
            a string.
        """
        mode, hexsha = value
        self._entries[name] = (mode, hexsha)
        self._needs_serialization = True

    def __delitem__(self, name: bytes) -> None:
        """Delete tree entry by name."""
        del self._entries[name]
        self._needs_serialization = True

    def __len__(self) -> int:
        """Return number of entries in tree."""
        return len(self._entries)

    def __iter__(self) -> Iterator[bytes]:
        """Iterate over tree entry names."""
        return iter(self._entries)

    def add(self, name: bytes, mode: int, hexsha: bytes) -> None:
        """Add an entry to the tree.

        Args:
          mode: The mode of the entry as an integral type. Not all
            possible modes are supported by git; see check() for details.
          name: The name of the entry, as a string.
          hexsha: The hex SHA of the entry as a string.
        """
        if b"/" in name or name in (b"", b".", b".."):
            raise ObjectFormatException(f"invalid tree entry name {name!r}")
        self._entries[name] = mode, hexsha
        self._needs_serialization = True

    def iteritems(self, name_order: bool = False) -> Iterator[TreeEntry]:
        """Iterate over entries.

        Args:
          name_order: If True, iterate in name order instead of tree
            order.
        Returns: Iterator over (name, mode, sha) tuples
        """
        return sorted_tree_items(self._entries, name_order)

    def items(self) -> list[TreeEntry]:
        """Return the sorted entries in this tree.

        Returns: List with (name, mode, sha) tuples
        """
        return list(self.iteritems())

    def _deserialize(self, chunks: list[bytes]) -> None:
        """Grab the entries in the tree."""
        try:
            parsed_entries = parse_tree(b"".join(chunks))
            self._entries = {n: (m, s) for n, m, s in parsed_entries}
        except ValueError as exc:
            raise ObjectFormatException(exc) from exc

    def check(self) -> None:
        """Check this object for internal consistency.

        Raises:
          ObjectFormatException: if the object is malformed in some way
        """
        super().check()
        allowed_modes = (
            stat.S_IFREG | 0o755,
            stat.S_IFREG | 0o644,
            stat.S_IFLNK,
            stat.S_IFDIR,
            0o160000,
        )
        last = None
        for name, mode, sha in parse_tree(b"".join(self._chunked_text or []), True):
            check_hexsha(sha, f"invalid sha {sha!r}")
            if b"/" in name or name in (b"", b".", b".."):
                raise ObjectFormatException(f"invalid name {name!r}")
            if mode not in allowed_modes:
                raise ObjectFormatException(f"invalid mode {mode:06o}")
            entry = (name, (mode, sha))
            if last:
                if key_entry(last) > key_entry(entry):
                    raise ObjectFormatException("entries not sorted")
                if name == last[0]:
                    raise ObjectFormatException(f"duplicate entry {name!r}")
            last = entry

    def _serialize(self) -> list[bytes]:
        return list(serialize_tree(self.iteritems()))


class Commit(ShaFile):
    """A git commit object."""

    type_name = b"commit"
    type_num = 1

    __slots__ = (
        "_author",
        "_author_time",
        "_author_timezone",
        "_commit_time",
        "_commit_timezone",
        "_committer",
        "_encoding",
        "_message",
        "_parents",
        "_tree",
    )

    def __init__(self) -> None:
        """Initialize an empty Commit."""
        super().__init__()
        self._parents: list[ObjectID] = []
        self._encoding: bytes | None = None
        self._tree: ObjectID | None = None
        self._author: bytes | None = None
        self._committer: bytes | None = None
        self._author_time = 0
        self._author_timezone = 0
        self._commit_time = 0
        self._commit_timezone = 0
        self._message = b""

    @classmethod
    def from_path(cls, path: str | bytes, sha: ObjectID | None = None) -> "Commit":
        """Read a commit from a file on disk."""
        commit = ShaFile.from_path(path, sha)
        if not isinstance(commit, cls):
            raise NotCommitError(commit.id)
        return commit

    def _deserialize(self, chunks: list[bytes]) -> None:
        text = b"".join(chunks)
        header_end = text.find(b"\n\n")
        if header_end < 0:
            headers, self._message = text, b""
        else:
            headers, self._message = text[:header_end], text[header_end + 2 :]
        self._parents = []
        self._encoding = None
        self._tree = None
        self._author = self._committer = None
        for line in headers.split(b"\n"):
            if not line:
                continue
            try:
                field, value = line.split(b" ", 1)
            except ValueError as exc:
                raise ObjectFormatException(f"invalid header {line!r}") from exc
            if field == _TREE_HEADER:
                self._tree = value
            elif field == _PARENT_HEADER:
                self._parents.append(value)
            elif field == _AUTHOR_HEADER:
                (self._author, self._author_time, self._author_timezone) = (
                    _parse_person(value)
                )
            elif field == _COMMITTER_HEADER:
                (self._committer, self._commit_time, self._commit_timezone) = (
                    _parse_person(value)
                )
            elif field == _ENCODING_HEADER:
                self._encoding = value

    def check(self) -> None:
        """Check this object for internal consistency.

        Raises:
          ObjectFormatException: if the object is malformed in some way
        """
        super().check()
        if self._tree is None:
            raise ObjectFormatException("missing tree")
        check_hexsha(self._tree, "invalid tree sha")
        for parent in self._parents:
            check_hexsha(parent, "invalid parent sha")
        check_identity(self._author, "invalid author")
        check_identity(self._committer, "invalid committer")

    def _serialize(self) -> list[bytes]:
        if self._tree is None:
            raise ObjectFormatException("commit has no tree")
        if self._author is None or self._committer is None:
            raise ObjectFormatException("commit has no author or committer")
        chunks = [git_line(_TREE_HEADER, self._tree)]
        for p in self._parents:
            chunks.append(git_line(_PARENT_HEADER, p))
        chunks.append(
            git_line(
                _AUTHOR_HEADER,
                _format_person(self._author, self._author_time, self._author_timezone),
            )
        )
        chunks.append(
            git_line(
                _COMMITTER_HEADER,
                _format_person(
                    self._committer, self._commit_time, self._commit_timezone
                ),
            )
        )
        if self._encoding:
            chunks.append(git_line(_ENCODING_HEADER, self._encoding))
        chunks.append(b"\n")
        chunks.append(self._message)
        return chunks

    tree = serializable_property("tree", "Tree that is the state of this commit")

    def _get_parents(self) -> list[ObjectID]:
        """Return a list of parents of this commit."""
        return self._parents

    def _set_parents(self, value: list[ObjectID]) -> None:
        """Set a list of parents of this commit."""
        self._needs_serialization = True
        self._parents = list(value)

    parents = property(
        _get_parents,
        _set_parents,
        doc="Parents of this commit, by their SHA1.",
    )

    author = serializable_property("author", "The name of the author of the commit")

    committer = serializable_property(
        "committer", "The name of the committer of the commit"
    )

    message = serializable_property("message", "The commit message")

    commit_time = serializable_property(
        "commit_time",
        "The timestamp of the commit. As the number of seconds since the epoch.",
    )

    commit_timezone = serializable_property(
        "commit_timezone", "The zone the commit time is in"
    )

    author_time = serializable_property(
        "author_time",
        "The timestamp the commit was written. As the number of "
        "seconds since the epoch.",
    )

    author_timezone = serializable_property(
        "author_timezone", "Returns the zone the author time is in."
    )

    encoding = serializable_property("encoding", "Encoding of the commit message.")


OBJECT_CLASSES: tuple[type[ShaFile], ...] = (
    Commit,
    Tree,
    Blob,
)

_TYPE_MAP: dict[bytes | int, type[ShaFile]] = {}

for cls in OBJECT_CLASSES:
    _TYPE_MAP[cls.type_name] = cls
    _TYPE_MAP[cls.type_num] = cls
