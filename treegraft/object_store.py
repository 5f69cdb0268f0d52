# object_store.py -- Object store for git objects
# Copyright (C) 2008-2013 Jelmer Vernooij <jelmer@jelmer.uk>
#                         and others
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


"""Git object store interfaces and implementation."""

__all__ = [
    "INFODIR",
    "PACKDIR",
    "PACK_MODE",
    "BaseObjectStore",
    "DiskObjectStore",
    "MemoryObjectStore",
    "iter_tree_contents",
    "tree_lookup_path",
]

import os
import stat
import time
from collections.abc import Callable, Iterable, Iterator
from typing import TYPE_CHECKING

from .errors import (
    NotFoundError,
    ObjectFormatException,
    ObjectStoreFailure,
    TypeMismatchError,
)
from .file import FileLocked, GitFile
from .log_utils import getLogger
from .objects import (
    ObjectID,
    ShaFile,
    Tree,
    TreeEntry,
    hex_to_filename,
    valid_hexsha,
)

if TYPE_CHECKING:
    from .config import Config

logger = getLogger(__name__)

INFODIR = "info"
PACKDIR = "pack"

# use permissions consistent with Git; just readable by everyone
PACK_MODE = 0o444 if os.name != "nt" else 0o644

# Grace period for cleaning up temporary lock files (in seconds)
DEFAULT_TEMPFILE_GRACE_PERIOD = 14 * 24 * 60 * 60  # 2 weeks


class BaseObjectStore:
    """Object store interface."""

    def contains_loose(self, sha: ObjectID) -> bool:
        """Check if a particular object is present by SHA1 and is loose."""
        raise NotImplementedError(self.contains_loose)

    def __contains__(self, sha1: ObjectID) -> bool:
        """Check if a particular object is present by SHA1."""
        return self.contains_loose(sha1)

    def get_raw(self, name: ObjectID) -> tuple[int, bytes]:
        """Obtain the raw text for an object.

        Args:
          name: sha for the object.
        Returns: tuple with numeric type and object contents.
        """
        raise NotImplementedError(self.get_raw)

    def __getitem__(self, sha1: ObjectID) -> ShaFile:
        """Obtain an object by SHA1."""
        type_num, uncomp = self.get_raw(sha1)
        return ShaFile.from_raw_string(type_num, uncomp, sha=sha1)

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs that are present in this store."""
        raise NotImplementedError(self.__iter__)

    def add_object(self, obj: ShaFile) -> None:
        """Add a single object to this object store.

        Adding an object that is already present is a no-op.
        """
        raise NotImplementedError(self.add_object)

    def add_objects(self, objects: Iterable[ShaFile]) -> None:
        """Add a set of objects to this object store.

        Args:
          objects: Iterable over objects
        """
        for obj in objects:
            self.add_object(obj)

    def close(self) -> None:
        """Close any files opened by this object store."""
        # Default implementation is a NO-OP

    def prune(self, grace_period: int | None = None) -> None:
        """Prune/clean up this object store.

        This includes removing orphaned temporary files and other
        housekeeping tasks. Default implementation is a NO-OP.

        Args:
          grace_period: Grace period in seconds for removing temporary files.
                       If None, uses the default grace period.
        """
        # Default implementation is a NO-OP

    def iter_prefix(self, prefix: bytes) -> Iterator[ObjectID]:
        """Iterate over all SHA1s that start with a given prefix.

        The default implementation is a naive iteration over all objects.
        However, subclasses may override this method with more efficient
        implementations.
        """
        for sha in self:
            if sha.startswith(prefix):
                yield sha

    def delete_loose_object(self, sha: ObjectID) -> None:
        """Delete a loose object.

        Args:
          sha: SHA1 of the object to delete

        Raises:
          KeyError: if the object is not present
        """
        raise NotImplementedError(self.delete_loose_object)

    def get_object_mtime(self, sha: ObjectID) -> float:
        """Get the modification time of an object.

        Args:
          sha: SHA1 of the object

        Returns:
          Modification time as seconds since epoch

        Raises:
          KeyError: if the object is not found
        """
        # Subclasses that track object age override this
        raise KeyError(sha)


class DiskObjectStore(BaseObjectStore):
    """Git-style object store that exists on disk as loose objects."""

    path: str | os.PathLike[str]

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        loose_compression_level: int = -1,
        fsync_object_files: bool = False,
    ) -> None:
        """Open an object store.

        Args:
          path: Path of the object store.
          loose_compression_level: zlib compression level for loose objects
          fsync_object_files: Whether to fsync object files after writing
        """
        super().__init__()
        self.path = path
        self.loose_compression_level = loose_compression_level
        self.fsync_object_files = fsync_object_files

    def __repr__(self) -> str:
        """Return string representation of DiskObjectStore."""
        return f"<{self.__class__.__name__}({self.path!r})>"

    @classmethod
    def from_config(
        cls, path: str | os.PathLike[str], config: "Config"
    ) -> "DiskObjectStore":
        """Create a DiskObjectStore from a configuration object.

        Args:
          path: Path to the object store directory
          config: Configuration object to read compression settings from

        Returns:
          New DiskObjectStore instance configured according to config
        """
        try:
            default_compression_level = int(config.get((b"core",), b"compression"))
        except KeyError:
            default_compression_level = -1
        try:
            loose_compression_level = int(
                config.get((b"core",), b"looseCompression")
            )
        except KeyError:
            loose_compression_level = default_compression_level
        fsync_object_files = config.get_boolean(
            (b"core",), b"fsyncObjectFiles", False
        )
        return cls(
            path,
            loose_compression_level=loose_compression_level,
            fsync_object_files=fsync_object_files,
        )

    def _get_shafile_path(self, sha: ObjectID) -> str:
        # Check from object dir
        return hex_to_filename(os.fspath(self.path), sha)

    def contains_loose(self, sha: ObjectID) -> bool:
        """Check if a particular object is present by SHA1 and is loose."""
        if not valid_hexsha(sha):
            return False
        return os.path.exists(self._get_shafile_path(sha))

    def _iter_loose_objects(self) -> Iterator[ObjectID]:
        for base in os.listdir(self.path):
            if len(base) != 2:
                continue
            for rest in os.listdir(os.path.join(self.path, base)):
                sha = os.fsencode(base + rest)
                if not valid_hexsha(sha):
                    continue
                yield sha

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs that are present in this store."""
        return self._iter_loose_objects()

    def count_loose_objects(self) -> int:
        """Count the number of loose objects in the object store.

        Returns:
            Number of loose objects
        """
        count = 0
        if not os.path.exists(self.path):
            return 0

        for i in range(256):
            subdir = os.path.join(self.path, f"{i:02x}")
            try:
                count += len([name for name in os.listdir(subdir) if len(name) == 38])
            except FileNotFoundError:
                # Directory may have been removed or is inaccessible
                continue

        return count

    def _get_loose_object(self, sha: ObjectID) -> ShaFile | None:
        path = self._get_shafile_path(sha)
        try:
            return ShaFile.from_path(path, sha)
        except FileNotFoundError:
            return None
        except ObjectFormatException as exc:
            raise ObjectStoreFailure(sha, f"corrupt object {sha!r}: {exc}") from exc
        except OSError as exc:
            raise ObjectStoreFailure(sha, f"unable to read {path}: {exc}") from exc

    def get_raw(self, name: ObjectID) -> tuple[int, bytes]:
        """Obtain the raw fulltext for an object.

        Args:
          name: sha for the object.
        Returns: tuple with numeric type and object contents.

        Raises:
          KeyError: if the object is not present
          ObjectStoreFailure: if the object exists but cannot be read
        """
        if not valid_hexsha(name):
            raise KeyError(name)
        ret = self._get_loose_object(name)
        if ret is None:
            raise KeyError(name)
        return ret.type_num, ret.as_raw_string()

    def __getitem__(self, sha1: ObjectID) -> ShaFile:
        """Obtain an object by SHA1."""
        if not valid_hexsha(sha1):
            raise KeyError(sha1)
        ret = self._get_loose_object(sha1)
        if ret is None:
            raise KeyError(sha1)
        return ret

    def delete_loose_object(self, sha: ObjectID) -> None:
        """Delete a loose object from disk.

        Args:
          sha: SHA1 of the object to delete

        Raises:
          KeyError: If the object file doesn't exist
        """
        try:
            os.remove(self._get_shafile_path(sha))
        except FileNotFoundError as exc:
            raise KeyError(sha) from exc

    def get_object_mtime(self, sha: ObjectID) -> float:
        """Get the modification time of an object.

        Args:
          sha: SHA1 of the object

        Returns:
          Modification time as seconds since epoch

        Raises:
          KeyError: if the object is not found
        """
        try:
            return os.path.getmtime(self._get_shafile_path(sha))
        except FileNotFoundError as exc:
            raise KeyError(sha) from exc

    def add_object(self, obj: ShaFile) -> None:
        """Add a single object to this object store.

        Args:
          obj: Object to add

        Raises:
          ObjectStoreFailure: if the object could not be written
        """
        path = self._get_shafile_path(obj.id)
        dir = os.path.dirname(path)
        try:
            try:
                os.mkdir(dir)
            except FileExistsError:
                pass
            if os.path.exists(path):
                return  # Already there, no need to write again
            with GitFile(
                path, "wb", mask=PACK_MODE, fsync=self.fsync_object_files
            ) as f:
                f.write(
                    obj.as_legacy_object(
                        compression_level=self.loose_compression_level
                    )
                )
        except FileLocked as exc:
            # Another writer may be storing the same content right now; only
            # accept that if its object is in place.
            if os.path.exists(path):
                return
            raise ObjectStoreFailure(
                obj.id,
                f"{obj.type_name.decode()} {obj.id.decode()} is locked by another "
                "writer and not yet stored",
            ) from exc
        except OSError as exc:
            raise ObjectStoreFailure(
                obj.id, f"unable to write {obj.type_name.decode()} {obj.id!r}: {exc}"
            ) from exc
        logger.debug("wrote %s %s", obj.type_name.decode(), obj.id.decode())

    def prune(self, grace_period: int | None = None) -> None:
        """Remove stale lock files left behind by interrupted writers.

        Args:
          grace_period: Lock files older than this many seconds are removed.
            If None, uses the default grace period (2 weeks).
        """
        if grace_period is None:
            grace_period = DEFAULT_TEMPFILE_GRACE_PERIOD
        for base in os.listdir(self.path):
            subdir = os.path.join(self.path, base)
            if len(base) != 2 or not os.path.isdir(subdir):
                continue
            for name in os.listdir(subdir):
                if not name.endswith(".lock"):
                    continue
                lock_path = os.path.join(subdir, name)
                try:
                    age = time.time() - os.path.getmtime(lock_path)
                    if age > grace_period:
                        os.remove(lock_path)
                        logger.debug("removed stale lock file %s", lock_path)
                except FileNotFoundError:
                    pass

    @classmethod
    def init(cls, path: str | os.PathLike[str], **kwargs: object) -> "DiskObjectStore":
        """Initialize a new disk object store.

        Creates the necessary directory structure for a Git object store.

        Args:
          path: Path where the object store should be created
          **kwargs: Passed on to the constructor

        Returns:
          New DiskObjectStore instance
        """
        try:
            os.mkdir(path)
        except FileExistsError:
            pass
        os.mkdir(os.path.join(path, INFODIR))
        os.mkdir(os.path.join(path, PACKDIR))
        return cls(path, **kwargs)  # type: ignore[arg-type]


class MemoryObjectStore(BaseObjectStore):
    """Object store that keeps all objects in memory."""

    def __init__(self) -> None:
        """Initialize a MemoryObjectStore.

        Creates an empty in-memory object store.
        """
        super().__init__()
        self._data: dict[ObjectID, ShaFile] = {}
        self._mtimes: dict[ObjectID, float] = {}

    def contains_loose(self, sha: ObjectID) -> bool:
        """Check if a particular object is present by SHA1 and is loose."""
        return sha in self._data

    def __iter__(self) -> Iterator[ObjectID]:
        """Iterate over the SHAs that are present in this store."""
        return iter(list(self._data.keys()))

    def get_raw(self, name: ObjectID) -> tuple[int, bytes]:
        """Obtain the raw text for an object.

        Args:
          name: sha for the object.
        Returns: tuple with numeric type and object contents.
        """
        obj = self[name]
        return obj.type_num, obj.as_raw_string()

    def __getitem__(self, name: ObjectID) -> ShaFile:
        """Retrieve an object by SHA.

        Args:
          name: SHA of the object

        Returns:
          Copy of the ShaFile object

        Raises:
          KeyError: If the object is not found
        """
        return self._data[name].copy()

    def __delitem__(self, name: ObjectID) -> None:
        """Delete an object from this store, for testing only."""
        del self._data[name]
        self._mtimes.pop(name, None)

    def add_object(self, obj: ShaFile) -> None:
        """Add a single object to this object store."""
        if obj.id in self._data:
            return
        self._data[obj.id] = obj.copy()
        self._mtimes[obj.id] = time.time()

    def delete_loose_object(self, sha: ObjectID) -> None:
        """Delete an object from this store."""
        del self[sha]

    def get_object_mtime(self, sha: ObjectID) -> float:
        """Get the time an object was added to this store."""
        return self._mtimes[sha]


def tree_lookup_path(
    lookup_obj: Callable[[ObjectID], ShaFile],
    root_sha: ObjectID,
    path: bytes,
) -> tuple[int, ObjectID]:
    """Look up an object in a Git tree.

    Args:
      lookup_obj: Callback for retrieving object by SHA1
      root_sha: SHA1 of the root tree
      path: Path to lookup, with segments separated by '/'
    Returns: A tuple of (mode, SHA) of the resulting path.

    Raises:
      NotFoundError: if a segment of the path does not exist
      TypeMismatchError: if a non-final segment names a blob
    """
    mode: int = stat.S_IFDIR
    sha = root_sha
    walked: list[bytes] = []
    for part in [p for p in path.split(b"/") if p]:
        if not stat.S_ISDIR(mode):
            raise TypeMismatchError(b"/".join(walked))
        tree = lookup_obj(sha)
        if not isinstance(tree, Tree):
            raise TypeMismatchError(b"/".join(walked))
        walked.append(part)
        try:
            mode, sha = tree[part]
        except KeyError as exc:
            raise NotFoundError(b"/".join(walked)) from exc
    return mode, sha


def iter_tree_contents(
    store: BaseObjectStore, tree_id: ObjectID | None, *, include_trees: bool = False
) -> Iterator[TreeEntry]:
    """Iterate the contents of a tree and all subtrees.

    Iteration is depth-first pre-order, as in e.g. os.walk.

    Args:
      store: Object store to get trees from
      tree_id: SHA1 of the tree.
      include_trees: If True, include tree objects in the iteration.

    Yields: TreeEntry namedtuples for all the objects in a tree.
    """
    if tree_id is None:
        return
    todo = [TreeEntry(b"", stat.S_IFDIR, tree_id)]
    while todo:
        entry = todo.pop()
        if stat.S_ISDIR(entry.mode):
            extra = []
            tree = store[entry.sha]
            assert isinstance(tree, Tree)
            for subentry in tree.iteritems(name_order=True):
                extra.append(subentry.in_path(entry.path))
            todo.extend(reversed(extra))
        if not stat.S_ISDIR(entry.mode) or include_trees:
            yield entry
