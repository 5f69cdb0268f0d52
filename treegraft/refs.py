# refs.py -- For dealing with git refs
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

"""Ref handling.

Refs are the only mutable state in a repository. Every update goes through
``set_if_equals`` / ``add_if_new`` / ``remove_if_equals``, which compare and
write in one step, so concurrent writers can never overwrite each other
without noticing.
"""

__all__ = [
    "HEADREF",
    "LOCAL_BRANCH_PREFIX",
    "SYMREF",
    "DictRefsContainer",
    "DiskRefsContainer",
    "RefsContainer",
    "SymrefLoop",
    "check_ref_format",
    "extract_branch_name",
    "is_local_branch",
    "local_branch_name",
    "parse_symref_value",
    "short_ref_to_full",
]

import os
import threading
from collections.abc import Iterator

from .errors import RefFormatError
from .file import GitFile, ensure_dir_exists
from .log_utils import getLogger
from .objects import ZERO_SHA, ObjectID

logger = getLogger(__name__)

Ref = bytes

HEADREF = b"HEAD"
SYMREF = b"ref: "
LOCAL_BRANCH_PREFIX = b"refs/heads/"
BAD_REF_CHARS = set(b"\177 ~^:?*[")

# Symbolic refs are followed this many levels deep at most
MAX_SYMREF_DEPTH = 5


class SymrefLoop(Exception):
    """There is a loop between one or more symrefs."""

    def __init__(self, ref: bytes, depth: int) -> None:
        """Initialize SymrefLoop exception."""
        self.ref = ref
        self.depth = depth
        super().__init__(f"symref loop at {ref!r} after {depth} levels")


def parse_symref_value(contents: bytes) -> bytes:
    """Parse a symref value.

    Args:
      contents: Contents to parse
    Returns: Destination
    """
    if contents.startswith(SYMREF):
        return contents[len(SYMREF) :].rstrip(b"\r\n")
    raise ValueError(contents)


def check_ref_format(refname: Ref) -> bool:
    """Check if a refname is correctly formatted.

    Implements all the same rules as git-check-ref-format[1].

    [1]
    http://www.kernel.org/pub/software/scm/git/docs/git-check-ref-format.html

    Args:
      refname: The refname to check
    Returns: True if refname is valid, False otherwise
    """
    # These could be combined into one big expression, but are listed
    # separately to parallel [1].
    if b"/." in refname or refname.startswith(b"."):
        return False
    if b"/" not in refname:
        return False
    if b".." in refname:
        return False
    for c in refname:
        if c < 0o40 or c in BAD_REF_CHARS:
            return False
    if refname[-1] in b"/.":
        return False
    if refname.endswith(b".lock"):
        return False
    if b"@{" in refname:
        return False
    if b"\\" in refname:
        return False
    return True


class RefsContainer:
    """A container for refs."""

    def set_symbolic_ref(self, name: Ref, other: Ref) -> None:
        """Make a ref point at another ref.

        Args:
          name: Name of the ref to set
          other: Name of the ref to point at
        """
        raise NotImplementedError(self.set_symbolic_ref)

    def allkeys(self) -> set[Ref]:
        """All refs present in this container."""
        raise NotImplementedError(self.allkeys)

    def __iter__(self) -> Iterator[Ref]:
        """Iterate over all reference keys."""
        return iter(self.allkeys())

    def keys(self, base: bytes | None = None) -> set[bytes]:
        """Refs present in this container.

        Args:
          base: An optional base to return refs under.
        Returns: An unsorted set of valid refs in this container.
        """
        if base is not None:
            return self.subkeys(base)
        else:
            return self.allkeys()

    def subkeys(self, base: bytes) -> set[bytes]:
        """Refs present in this container under a base.

        Args:
          base: The base to return refs under.
        Returns: A set of valid refs in this container under the base; the base
            prefix is stripped from the ref names returned.
        """
        keys = set()
        base = base.rstrip(b"/") + b"/"
        for refname in self.allkeys():
            if refname.startswith(base):
                keys.add(refname[len(base) :])
        return keys

    def as_dict(self, base: bytes | None = None) -> dict[Ref, ObjectID]:
        """Return the contents of this container as a dictionary."""
        ret = {}
        keys = self.keys(base)
        if base is None:
            base = b""
        else:
            base = base.rstrip(b"/")
        for key in keys:
            try:
                ret[key] = self[(base + b"/" + key).strip(b"/")]
            except (SymrefLoop, KeyError):
                continue  # Unable to resolve

        return ret

    def _check_refname(self, name: bytes) -> None:
        """Ensure a refname is valid and lives in refs or is HEAD.

        HEAD is not a valid refname according to git-check-ref-format, but this
        class needs to be able to touch HEAD. Also, check_ref_format expects
        refnames without the leading 'refs/', but this class requires that
        so it cannot touch anything outside the refs dir (or HEAD).

        Args:
          name: The name of the reference.

        Raises:
          RefFormatError: if a refname is not HEAD or is otherwise not valid.
        """
        if name == HEADREF:
            return
        if not name.startswith(b"refs/") or not check_ref_format(name[5:]):
            raise RefFormatError(name)

    def read_ref(self, refname: bytes) -> bytes | None:
        """Read a reference without following any references.

        Args:
          refname: The name of the reference
        Returns: The contents of the ref, or None if it does not exist.
        """
        raise NotImplementedError(self.read_ref)

    def follow(self, name: bytes) -> tuple[list[bytes], bytes | None]:
        """Follow a reference name.

        Returns: a tuple of (refnames, sha), wheres refnames are the names of
            references in the chain
        """
        contents: bytes | None = SYMREF + name
        depth = 0
        refnames = []
        while contents and contents.startswith(SYMREF):
            refname = contents[len(SYMREF) :]
            refnames.append(refname)
            contents = self.read_ref(refname)
            if not contents:
                break
            depth += 1
            if depth > MAX_SYMREF_DEPTH:
                raise SymrefLoop(name, depth)
        return refnames, contents

    def __contains__(self, refname: bytes) -> bool:
        """Check if a reference exists."""
        if self.read_ref(refname):
            return True
        return False

    def __getitem__(self, name: bytes) -> ObjectID:
        """Get the SHA1 for a reference name.

        This method follows all symbolic references.
        """
        _, sha = self.follow(name)
        if sha is None:
            raise KeyError(name)
        return sha

    def get_symrefs(self) -> dict[bytes, bytes]:
        """Get a dict with all symrefs in this container.

        Returns: Dictionary mapping source ref to target ref
        """
        ret = {}
        for src in self.allkeys():
            try:
                ref_value = self.read_ref(src)
                assert ref_value is not None
                dst = parse_symref_value(ref_value)
            except ValueError:
                pass
            else:
                ret[src] = dst
        return ret

    def set_if_equals(
        self, name: bytes, old_ref: bytes | None, new_ref: bytes
    ) -> bool:
        """Set a refname to new_ref only if it currently equals old_ref.

        This method follows all symbolic references if applicable for the
        subclass, and can be used to perform an atomic compare-and-swap
        operation.

        Args:
          name: The refname to set.
          old_ref: The old sha the refname must refer to, or None to set
            unconditionally.
          new_ref: The new sha the refname will refer to.
        Returns: True if the set was successful, False otherwise.
        """
        raise NotImplementedError(self.set_if_equals)

    def add_if_new(self, name: bytes, ref: bytes) -> bool:
        """Add a new reference only if it does not already exist.

        Args:
          name: Ref name
          ref: Ref value
        Returns: True if the add was successful, False otherwise.
        """
        raise NotImplementedError(self.add_if_new)

    def __setitem__(self, name: bytes, ref: bytes) -> None:
        """Set a reference name to point to the given SHA1.

        This method follows all symbolic references if applicable for the
        subclass.

        Note: This method unconditionally overwrites the contents of a
            reference. To update atomically only if the reference has not
            changed, use set_if_equals().

        Args:
          name: The refname to set.
          ref: The new sha the refname will refer to.
        """
        if not (valid_ref_value(ref) or ref.startswith(SYMREF)):
            raise ValueError(f"{ref!r} must be a valid sha (40 chars) or a symref")
        self.set_if_equals(name, None, ref)

    def remove_if_equals(self, name: bytes, old_ref: bytes | None) -> bool:
        """Remove a refname only if it currently equals old_ref.

        This method does not follow symbolic references, even if applicable for
        the subclass. It can be used to perform an atomic compare-and-delete
        operation.

        Args:
          name: The refname to delete.
          old_ref: The old sha the refname must refer to, or None to
            delete unconditionally.
        Returns: True if the delete was successful, False otherwise.
        """
        raise NotImplementedError(self.remove_if_equals)

    def __delitem__(self, name: bytes) -> None:
        """Remove a refname.

        This method does not follow symbolic references, even if applicable for
        the subclass.

        Note: This method unconditionally deletes the contents of a reference.
            To delete atomically only if the reference has not changed, use
            remove_if_equals().

        Args:
          name: The refname to delete.
        """
        self.remove_if_equals(name, None)


def valid_ref_value(value: bytes) -> bool:
    """Check whether a ref value is a 40 character hex sha."""
    return len(value) == 40 and all(c in b"0123456789abcdef" for c in value)


class DictRefsContainer(RefsContainer):
    """RefsContainer backed by a simple dict.

    Updates are serialized with a lock, so compare-and-swap is atomic across
    threads sharing the container.
    """

    def __init__(self, refs: dict[bytes, bytes]) -> None:
        """Initialize DictRefsContainer with a refs dictionary."""
        super().__init__()
        self._refs = refs
        self._lock = threading.Lock()

    def allkeys(self) -> set[bytes]:
        """Return all reference keys."""
        with self._lock:
            return set(self._refs.keys())

    def read_ref(self, refname: bytes) -> bytes | None:
        """Read a reference without following symrefs."""
        return self._refs.get(refname, None)

    def set_symbolic_ref(self, name: Ref, other: Ref) -> None:
        """Make a ref point at another ref.

        Args:
          name: Name of the ref to set
          other: Name of the ref to point at
        """
        self._check_refname(name)
        self._check_refname(other)
        with self._lock:
            self._refs[name] = SYMREF + other

    def _realname(self, name: bytes) -> bytes:
        try:
            realnames, _ = self.follow(name)
            return realnames[-1]
        except (KeyError, IndexError, SymrefLoop):
            return name

    def set_if_equals(
        self, name: bytes, old_ref: bytes | None, new_ref: bytes
    ) -> bool:
        """Set a refname to new_ref only if it currently equals old_ref.

        This method follows all symbolic references, and can be used to perform
        an atomic compare-and-swap operation.

        Args:
          name: The refname to set.
          old_ref: The old sha the refname must refer to, or None to set
            unconditionally.
          new_ref: The new sha the refname will refer to.

        Returns:
          True if the set was successful, False otherwise.
        """
        self._check_refname(name)
        with self._lock:
            realname = self._realname(name)
            if old_ref is not None and self._refs.get(realname, ZERO_SHA) != old_ref:
                return False
            self._refs[realname] = new_ref
        return True

    def add_if_new(self, name: Ref, ref: ObjectID) -> bool:
        """Add a new reference only if it does not already exist.

        This method follows symrefs, and only ensures that the last ref in the
        chain does not exist.

        Args:
          name: Ref name
          ref: Ref value

        Returns:
          True if the add was successful, False otherwise.
        """
        with self._lock:
            realname = self._realname(name)
            self._check_refname(realname)
            if realname in self._refs:
                return False
            self._refs[realname] = ref
        return True

    def remove_if_equals(self, name: bytes, old_ref: bytes | None) -> bool:
        """Remove a refname only if it currently equals old_ref.

        This method does not follow symbolic references. It can be used to
        perform an atomic compare-and-delete operation.

        Args:
          name: The refname to delete.
          old_ref: The old sha the refname must refer to, or None to
            delete unconditionally.

        Returns:
          True if the delete was successful, False otherwise.
        """
        with self._lock:
            if old_ref is not None and self._refs.get(name, ZERO_SHA) != old_ref:
                return False
            self._refs.pop(name, None)
        return True


class DiskRefsContainer(RefsContainer):
    """Refs container that reads refs from disk.

    Each write takes ``<ref>.lock`` and re-reads the current value while
    holding it; a second writer either fails to take the lock or sees the
    first writer's value.
    """

    def __init__(self, path: str | bytes | os.PathLike[str]) -> None:
        """Initialize DiskRefsContainer."""
        super().__init__()
        # Convert path-like objects to strings, then to bytes for Git compatibility
        self.path = os.fsencode(os.fspath(path))

    def __repr__(self) -> str:
        """Return string representation of DiskRefsContainer."""
        return f"{self.__class__.__name__}({self.path!r})"

    def _iter_loose_refs(self, base: bytes = b"refs/") -> Iterator[bytes]:
        base = base.rstrip(b"/")
        refspath = os.path.join(self.path, base)
        prefix_len = len(os.path.join(self.path, b""))
        for root, _dirs, files in os.walk(refspath):
            directory = root[prefix_len:]
            if os.path.sep != "/":
                directory = directory.replace(os.fsencode(os.path.sep), b"/")
            for filename in files:
                refname = b"/".join([directory, filename])
                if check_ref_format(refname):
                    yield refname

    def subkeys(self, base: bytes) -> set[bytes]:
        """Return subkeys under a given base reference path."""
        subkeys = set()
        prefix = base.rstrip(b"/") + b"/"
        for key in self._iter_loose_refs(base):
            if key.startswith(prefix):
                subkeys.add(key[len(prefix) :])
        return subkeys

    def allkeys(self) -> set[bytes]:
        """Return all reference keys."""
        allkeys = set()
        if os.path.exists(self.refpath(HEADREF)):
            allkeys.add(HEADREF)
        allkeys.update(self._iter_loose_refs())
        return allkeys

    def refpath(self, name: bytes) -> bytes:
        """Return the disk path of a ref."""
        path = name
        if os.path.sep != "/":
            path = path.replace(b"/", os.fsencode(os.path.sep))
        return os.path.join(self.path, path)

    def read_ref(self, refname: bytes) -> bytes | None:
        """Read a reference file and return its contents.

        If the reference file a symbolic reference, only read the first line of
        the file. Otherwise, only read the first 40 bytes.

        Args:
          refname: the refname to read, relative to refpath
        Returns: The contents of the ref file, or None if the file does not
            exist.
        """
        filename = self.refpath(refname)
        try:
            with GitFile(filename, "rb") as f:
                header = f.read(len(SYMREF))
                if header == SYMREF:
                    # Read only the first line
                    return header + next(iter(f)).rstrip(b"\r\n")
                else:
                    # Read only the first 40 bytes
                    return header + f.read(40 - len(SYMREF))
        except (OSError, UnicodeError):
            # don't assume anything specific about the error; in
            # particular, invalid or forbidden paths can raise weird
            # errors depending on the specific operating system
            return None

    def set_symbolic_ref(self, name: bytes, other: bytes) -> None:
        """Make a ref point at another ref.

        Args:
          name: Name of the ref to set
          other: Name of the ref to point at
        """
        self._check_refname(name)
        self._check_refname(other)
        filename = self.refpath(name)
        ensure_dir_exists(os.path.dirname(filename))
        with GitFile(filename, "wb") as f:
            f.write(SYMREF + other + b"\n")

    def set_if_equals(
        self, name: bytes, old_ref: bytes | None, new_ref: bytes
    ) -> bool:
        """Set a refname to new_ref only if it currently equals old_ref.

        This method follows all symbolic references, and can be used to perform
        an atomic compare-and-swap operation.

        Args:
          name: The refname to set.
          old_ref: The old sha the refname must refer to, or None to set
            unconditionally.
          new_ref: The new sha the refname will refer to.
        Returns: True if the set was successful, False otherwise.

        Raises:
          FileLocked: if another writer holds the lock on the ref
        """
        self._check_refname(name)
        try:
            realnames, _ = self.follow(name)
            realname = realnames[-1]
        except (KeyError, IndexError, SymrefLoop):
            realname = name
        filename = self.refpath(realname)

        ensure_dir_exists(os.path.dirname(filename))
        with GitFile(filename, "wb") as f:
            # read again while holding the lock to handle race conditions
            current_ref = self.read_ref(realname)
            if old_ref is not None and (current_ref or ZERO_SHA) != old_ref:
                f.abort()
                return False

            if current_ref is not None and current_ref == new_ref:
                # Ref already has desired value, skip the write
                f.abort()
                return True

            try:
                f.write(new_ref + b"\n")
            except OSError:
                f.abort()
                raise
        logger.debug("updated %s to %s", realname.decode(), new_ref.decode())
        return True

    def add_if_new(self, name: bytes, ref: bytes) -> bool:
        """Add a new reference only if it does not already exist.

        This method follows symrefs, and only ensures that the last ref in the
        chain does not exist.

        Args:
          name: The refname to set.
          ref: The new sha the refname will refer to.
        Returns: True if the add was successful, False otherwise.

        Raises:
          FileLocked: if another writer holds the lock on the ref
        """
        try:
            realnames, contents = self.follow(name)
            if contents is not None:
                return False
            realname = realnames[-1]
        except (KeyError, IndexError):
            realname = name
        self._check_refname(realname)
        filename = self.refpath(realname)
        ensure_dir_exists(os.path.dirname(filename))
        with GitFile(filename, "wb") as f:
            if os.path.exists(filename):
                f.abort()
                return False
            try:
                f.write(ref + b"\n")
            except OSError:
                f.abort()
                raise
        logger.debug("created %s at %s", realname.decode(), ref.decode())
        return True

    def remove_if_equals(self, name: bytes, old_ref: bytes | None) -> bool:
        """Remove a refname only if it currently equals old_ref.

        This method does not follow symbolic references. It can be used to
        perform an atomic compare-and-delete operation.

        Args:
          name: The refname to delete.
          old_ref: The old sha the refname must refer to, or None to
            delete unconditionally.
        Returns: True if the delete was successful, False otherwise.
        """
        self._check_refname(name)
        filename = self.refpath(name)
        ensure_dir_exists(os.path.dirname(filename))
        f = GitFile(filename, "wb")
        try:
            if old_ref is not None:
                orig_ref = self.read_ref(name) or ZERO_SHA
                if orig_ref != old_ref:
                    return False

            try:
                os.remove(filename)
            except FileNotFoundError:
                pass
        finally:
            # never write, we just wanted the lock
            f.abort()

        # outside of the lock, clean-up any parent directory that might now
        # be empty. this ensures that re-creating a reference of the same
        # name of what was previously a directory works as expected
        parent = name
        while True:
            try:
                parent, _ = parent.rsplit(b"/", 1)
            except ValueError:
                break

            if parent in (b"refs", b"refs/heads", b"refs/tags"):
                break
            try:
                os.rmdir(self.refpath(parent))
            except OSError:
                # not empty, or removed by another process
                break

        return True


def is_local_branch(x: bytes) -> bool:
    """Check if a ref name is a local branch."""
    return x.startswith(LOCAL_BRANCH_PREFIX)


def local_branch_name(name: bytes) -> bytes:
    """Build a full branch ref from a short name.

    Args:
      name: Short branch name (e.g., b"main") or full ref

    Returns:
      Full branch ref name (e.g., b"refs/heads/main")

    Examples:
      >>> local_branch_name(b"main")
      b'refs/heads/main'
      >>> local_branch_name(b"refs/heads/main")
      b'refs/heads/main'
    """
    if name.startswith(LOCAL_BRANCH_PREFIX):
        return name
    return LOCAL_BRANCH_PREFIX + name


def short_ref_to_full(name: bytes) -> bytes:
    """Expand a user supplied ref name.

    HEAD and anything under refs/ are used as is; any other name is taken
    to be a branch.

    Examples:
      >>> short_ref_to_full(b"HEAD")
      b'HEAD'
      >>> short_ref_to_full(b"feature/x")
      b'refs/heads/feature/x'
    """
    if name == HEADREF or name.startswith(b"refs/"):
        return name
    return local_branch_name(name)


def extract_branch_name(ref: bytes) -> bytes:
    """Extract branch name from a full branch ref.

    Args:
      ref: Full branch ref (e.g., b"refs/heads/main")

    Returns:
      Short branch name (e.g., b"main")

    Raises:
      ValueError: If ref is not a local branch

    Examples:
      >>> extract_branch_name(b"refs/heads/main")
      b'main'
      >>> extract_branch_name(b"refs/heads/feature/foo")
      b'feature/foo'
    """
    if not ref.startswith(LOCAL_BRANCH_PREFIX):
        raise ValueError(f"Not a local branch ref: {ref!r}")
    return ref[len(LOCAL_BRANCH_PREFIX) :]
