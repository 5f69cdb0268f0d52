# errors.py -- treegraft exception classes
# Copyright (C) 2007 James Westby <jw+debian@jameswestby.net>
# Copyright (C) 2009-2012 Jelmer Vernooij <jelmer@jelmer.uk>
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

"""treegraft exception classes.

Each outcome of a tree edit, merge or publish has its own class, so callers
can tell a missing path from a lost ref race without parsing messages.
"""


def _display(value: bytes | str | None) -> str:
    if value is None:
        return "(absent)"
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


class WrongObjectException(Exception):
    """Baseclass for all the _ is not a _ exceptions on objects.

    Do not instantiate directly.

    Subclasses should define a type_name attribute that indicates what
    was expected if they were raised.
    """

    type_name: str

    def __init__(self, sha: bytes, *args: object) -> None:
        """Initialize a WrongObjectException.

        Args:
            sha: The SHA of the object that was not of the expected type.
            *args: Additional positional arguments.
        """
        self.sha = sha
        Exception.__init__(self, f"{sha.decode('ascii')} is not a {self.type_name}")


class NotCommitError(WrongObjectException):
    """Indicates that the sha requested does not point to a commit."""

    type_name = "commit"


class NotTreeError(WrongObjectException):
    """Indicates that the sha requested does not point to a tree."""

    type_name = "tree"


class NotBlobError(WrongObjectException):
    """Indicates that the sha requested does not point to a blob."""

    type_name = "blob"


class NotGitRepository(Exception):
    """Indicates that no Git repository was found."""


class FileFormatException(Exception):
    """Base class for exceptions relating to reading git file formats."""


class ObjectFormatException(FileFormatException):
    """Indicates an error parsing an object."""


class RefFormatError(Exception):
    """Indicates an invalid ref name."""

    def __init__(self, name: bytes) -> None:
        """Initialize RefFormatError."""
        self.name = name
        super().__init__(f"invalid ref name {_display(name)!r}")


class InvalidPathError(ValueError):
    """A tree path is empty or contains an empty, '.' or '..' segment."""

    def __init__(self, path: bytes | str) -> None:
        """Initialize InvalidPathError.

        Args:
          path: The offending path
        """
        self.path = path
        super().__init__(f"invalid tree path {_display(path)!r}")


class NotFoundError(Exception):
    """A ref, path or object does not exist."""

    def __init__(self, path: bytes | str, message: str | None = None) -> None:
        """Initialize NotFoundError.

        Args:
          path: Name of the missing ref, path or object
          message: Optional description replacing the default message
        """
        self.path = path
        if message is None:
            message = f"{_display(path)} not found"
        super().__init__(message)


class TypeMismatchError(Exception):
    """A path traverses through a blob where a tree was expected."""

    def __init__(self, path: bytes | str, message: str | None = None) -> None:
        """Initialize TypeMismatchError.

        Args:
          path: Path of the entry that has the wrong kind
          message: Optional description replacing the default message
        """
        self.path = path
        if message is None:
            message = f"{_display(path)} is a file, not a directory"
        super().__init__(message)


class IsDirectoryError(Exception):
    """A file operation was pointed at a tree."""

    def __init__(self, path: bytes | str) -> None:
        """Initialize IsDirectoryError.

        Args:
          path: Path that names a tree
        """
        self.path = path
        super().__init__(f"{_display(path)} points to a tree, not a file")


class MergeConflict(Exception):
    """Raised when a three-way merge cannot decide a path on its own."""

    def __init__(self, path: bytes, message: str = "both sides changed") -> None:
        """Initialize MergeConflict.

        Args:
          path: Path of the conflicting entry, relative to the root tree
          message: Conflict description
        """
        self.path = path
        super().__init__(f"Merge conflict in {_display(path)}: {message}")


class StaleRefError(Exception):
    """A compare-and-swap on a ref lost against a concurrent update."""

    def __init__(self, ref: bytes, expected: bytes | None) -> None:
        """Initialize StaleRefError.

        Args:
          ref: Name of the ref that was not updated
          expected: Value the ref was expected to hold (None for absent)
        """
        self.ref = ref
        self.expected = expected
        super().__init__(
            f"{_display(ref)} no longer points at {_display(expected)}; "
            "re-read it and retry"
        )


class AlreadyExistsError(Exception):
    """A ref that should be created already exists."""

    def __init__(self, ref: bytes) -> None:
        """Initialize AlreadyExistsError.

        Args:
          ref: Name of the existing ref
        """
        self.ref = ref
        super().__init__(f"{_display(ref)} already exists")


class ObjectStoreFailure(Exception):
    """The object store could not read or write an object."""

    def __init__(self, sha: bytes | None, message: str) -> None:
        """Initialize ObjectStoreFailure.

        Args:
          sha: Id of the object involved, if known
          message: Description of the failure
        """
        self.sha = sha
        super().__init__(message)
