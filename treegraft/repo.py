# repo.py -- For dealing with git repositories.
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


"""Repository access.

treegraft repositories are always bare: there is no working tree or index,
every change is made by writing new tree and commit objects and moving a
ref. A repository pairs an object store with a refs container.
"""

__all__ = [
    "BASE_DIRECTORIES",
    "CONTROLDIR",
    "DEFAULT_BRANCH",
    "OBJECTDIR",
    "REFSDIR",
    "BaseRepo",
    "DefaultIdentityNotFound",
    "InvalidUserIdentity",
    "MemoryRepo",
    "Repo",
    "check_user_identity",
    "get_user_identity",
]

import os
import socket
from collections.abc import Iterable, Mapping
from io import BytesIO
from types import TracebackType
from typing import TYPE_CHECKING, BinaryIO, TypeVar

from .errors import NotBlobError, NotCommitError, NotGitRepository, NotTreeError
from .file import GitFile
from .object_store import BaseObjectStore, DiskObjectStore, MemoryObjectStore
from .objects import Blob, Commit, ObjectID, ShaFile, Tree
from .refs import (
    HEADREF,
    DictRefsContainer,
    DiskRefsContainer,
    RefsContainer,
    local_branch_name,
)

if TYPE_CHECKING:
    from .config import ConfigFile, StackedConfig

CONTROLDIR = ".git"
OBJECTDIR = "objects"
REFSDIR = "refs"
REFSDIR_TAGS = "tags"
REFSDIR_HEADS = "heads"

BASE_DIRECTORIES = [
    ["branches"],
    [REFSDIR],
    [REFSDIR, REFSDIR_TAGS],
    [REFSDIR, REFSDIR_HEADS],
    ["hooks"],
    ["info"],
]

DEFAULT_BRANCH = b"main"

T = TypeVar("T", bound=ShaFile)


class InvalidUserIdentity(Exception):
    """User identity is not of the format 'user <email>'."""

    def __init__(self, identity: str) -> None:
        """Initialize InvalidUserIdentity exception."""
        self.identity = identity
        super().__init__(f"invalid identity {identity!r}, expected 'Name <email>'")


class DefaultIdentityNotFound(Exception):
    """Default identity could not be determined."""


def _get_default_identity() -> tuple[str, str]:
    for name in ("LOGNAME", "USER", "LNAME", "USERNAME"):
        username = os.environ.get(name)
        if username:
            break
    else:
        username = None

    fullname = None
    try:
        import pwd
    except ImportError:
        pass
    else:
        try:
            entry = pwd.getpwuid(os.getuid())
        except KeyError:
            pass
        else:
            if getattr(entry, "pw_gecos", None):
                fullname = entry.pw_gecos.split(",")[0]
            if username is None:
                username = entry.pw_name
    if username is None:
        raise DefaultIdentityNotFound("no username found")
    if not fullname:
        fullname = username
    email = os.environ.get("EMAIL")
    if email is None:
        email = f"{username}@{socket.gethostname()}"
    return (fullname, email)


def get_user_identity(config: "StackedConfig", kind: str | None = None) -> bytes:
    """Determine the identity to use for new commits.

    If kind is set, this first checks
    GIT_${KIND}_NAME and GIT_${KIND}_EMAIL.

    If those variables are not set, then it will fall back
    to reading the user.name and user.email settings from
    the specified configuration.

    If that also fails, then it will fall back to using
    the current users' identity as obtained from the host
    system (e.g. the gecos field, $EMAIL, $USER@$(hostname -f).

    Args:
      config: Configuration stack to read from
      kind: Optional kind to return identity for,
        usually either "AUTHOR" or "COMMITTER".

    Returns:
      A user identity
    """
    user: bytes | None = None
    email: bytes | None = None
    if kind:
        user_uc = os.environ.get("GIT_" + kind + "_NAME")
        if user_uc is not None:
            user = user_uc.encode("utf-8")
        email_uc = os.environ.get("GIT_" + kind + "_EMAIL")
        if email_uc is not None:
            email = email_uc.encode("utf-8")
    if user is None:
        try:
            user = config.get(("user",), "name")
        except KeyError:
            user = None
    if email is None:
        try:
            email = config.get(("user",), "email")
        except KeyError:
            email = None
    if user is None or email is None:
        default_user, default_email = _get_default_identity()
        if user is None:
            user = default_user.encode("utf-8")
        if email is None:
            email = default_email.encode("utf-8")
    if email.startswith(b"<") and email.endswith(b">"):
        email = email[1:-1]
    return user + b" <" + email + b">"


def check_user_identity(identity: bytes) -> None:
    """Verify that a user identity is formatted correctly.

    Args:
      identity: User identity bytestring
    Raises:
      InvalidUserIdentity: Raised when identity is invalid
    """
    try:
        _fst, snd = identity.split(b" <", 1)
    except ValueError as exc:
        raise InvalidUserIdentity(identity.decode("utf-8", "replace")) from exc
    if not snd.endswith(b">"):
        raise InvalidUserIdentity(identity.decode("utf-8", "replace"))
    if b"\0" in identity or b"\n" in identity:
        raise InvalidUserIdentity(identity.decode("utf-8", "replace"))


class BaseRepo:
    """Base class for a git repository.

    Attributes:
      object_store: Dictionary-like object for accessing
        the objects
      refs: Dictionary-like object with the refs in this
        repository
    """

    def __init__(self, object_store: BaseObjectStore, refs: RefsContainer) -> None:
        """Open a repository.

        This shouldn't be called directly, but rather through one of the
        base classes, such as MemoryRepo or Repo.

        Args:
          object_store: Object store to use
          refs: Refs container to use
        """
        self.object_store = object_store
        self.refs = refs

    def _init_files(self) -> None:
        """Initialize a default set of named files."""
        from .config import ConfigFile

        self._put_named_file("description", b"Unnamed repository")
        f = BytesIO()
        cf = ConfigFile()
        cf.set("core", "repositoryformatversion", "0")
        cf.set("core", "bare", True)
        cf.write_to_file(f)
        self._put_named_file("config", f.getvalue())
        self._init_config(cf)

    def _init_config(self, config: "ConfigFile") -> None:
        """Hook for subclasses that keep the config in memory."""

    def get_named_file(self, path: str) -> BinaryIO | None:
        """Get a file from the control dir with a specific name.

        Args:
          path: The path to the file, relative to the control dir.
        Returns: An open file object, or None if the file does not exist.
        """
        raise NotImplementedError(self.get_named_file)

    def _put_named_file(self, path: str, contents: bytes) -> None:
        """Write a file to the control dir with the given name and contents.

        Args:
          path: The path to the file, relative to the control dir.
          contents: A string to write to the file.
        """
        raise NotImplementedError(self._put_named_file)

    def get_refs(self) -> dict[bytes, ObjectID]:
        """Get dictionary with all refs.

        Returns: A ``dict`` mapping ref names to SHA1s
        """
        return self.refs.as_dict()

    def head(self) -> ObjectID:
        """Return the SHA1 pointed at by HEAD."""
        return self.refs[HEADREF]

    def get_object(self, sha: ObjectID) -> ShaFile:
        """Retrieve the object with the specified SHA.

        Args:
          sha: SHA to retrieve
        Returns: A ShaFile object
        Raises:
          KeyError: when the object can not be found
        """
        return self.object_store[sha]

    def _get_object(self, sha: ObjectID, cls: type[T]) -> T:
        ret = self.get_object(sha)
        if not isinstance(ret, cls):
            if cls is Commit:
                raise NotCommitError(ret.id)
            elif cls is Blob:
                raise NotBlobError(ret.id)
            elif cls is Tree:
                raise NotTreeError(ret.id)
            else:
                raise Exception(f"Type invalid: {ret.type_name!r} != {cls.type_name!r}")
        return ret

    def get_commit(self, sha: ObjectID) -> Commit:
        """Retrieve a commit, checking its type."""
        return self._get_object(sha, Commit)

    def get_tree(self, sha: ObjectID) -> Tree:
        """Retrieve a tree, checking its type."""
        return self._get_object(sha, Tree)

    def get_blob(self, sha: ObjectID) -> Blob:
        """Retrieve a blob, checking its type."""
        return self._get_object(sha, Blob)

    def get_parents(self, sha: ObjectID) -> list[ObjectID]:
        """Retrieve the parents of a specific commit."""
        return self.get_commit(sha).parents

    def get_config(self) -> "ConfigFile":
        """Retrieve the config object.

        Returns: `ConfigFile` object for the repository's ``config`` file.
        """
        raise NotImplementedError(self.get_config)

    def get_description(self) -> bytes | None:
        """Retrieve the description for this repository."""
        f = self.get_named_file("description")
        if f is None:
            return None
        with f:
            return f.read()

    def set_description(self, description: bytes) -> None:
        """Set the description for this repository."""
        self._put_named_file("description", description)

    def get_config_stack(self) -> "StackedConfig":
        """Return a config stack for this repository.

        This stack accesses the configuration for both this repository
        itself and the global configuration, which usually lives in
        ~/.gitconfig.

        Returns: `Config` instance for this repository
        """
        from .config import ConfigFile, StackedConfig

        local_config = self.get_config()
        backends: list[ConfigFile] = [local_config]
        backends += StackedConfig.default_backends()
        return StackedConfig(backends, writable=local_config)

    def __getitem__(self, name: ObjectID) -> ShaFile:
        """Retrieve an object by SHA1 or a ref name.

        Raises:
          KeyError: when neither an object nor a ref matches
        """
        if len(name) == 40:
            try:
                return self.object_store[name]
            except KeyError:
                pass
        return self.object_store[self.refs[name]]

    def __contains__(self, name: bytes) -> bool:
        """Check if a specific object or ref is present."""
        if len(name) == 40 and name in self.object_store:
            return True
        return name in self.refs

    def close(self) -> None:
        """Close any files opened by this repository."""
        self.object_store.close()

    def __enter__(self) -> "BaseRepo":
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager and close repository."""
        self.close()


class Repo(BaseRepo):
    """A bare git repository backed by local disk.

    To open an existing repository, call the constructor with
    the path of the repository.

    To create a new repository, use the Repo.init_bare class method.

    Attributes:
      path: Path to the repository control directory
    """

    path: str
    object_store: DiskObjectStore
    refs: DiskRefsContainer

    def __init__(self, root: str | bytes | os.PathLike[str]) -> None:
        """Open a repository on disk.

        Both a bare repository and a directory holding a ``.git`` control
        directory are accepted.

        Args:
          root: Path to the repository's root.

        Raises:
          NotGitRepository: if root holds no repository
        """
        root = os.fspath(root)
        if isinstance(root, bytes):
            root = os.fsdecode(root)
        hidden_path = os.path.join(root, CONTROLDIR)
        if os.path.isdir(os.path.join(hidden_path, OBJECTDIR)):
            self._controldir = hidden_path
        elif os.path.isdir(os.path.join(root, OBJECTDIR)) and os.path.isdir(
            os.path.join(root, REFSDIR)
        ):
            self._controldir = root
        else:
            raise NotGitRepository(f"No git repository was found at {root}")
        self.path = root

        config = self.get_config()
        object_store = DiskObjectStore.from_config(
            os.path.join(self._controldir, OBJECTDIR), config
        )
        BaseRepo.__init__(self, object_store, DiskRefsContainer(self._controldir))

    def __repr__(self) -> str:
        """Return string representation of this repository."""
        return f"<Repo at {self.path!r}>"

    def controldir(self) -> str:
        """Return the path of the control directory."""
        return self._controldir

    def _put_named_file(self, path: str, contents: bytes) -> None:
        path = path.lstrip(os.path.sep)
        with GitFile(os.path.join(self.controldir(), path), "wb") as f:
            f.write(contents)

    def get_named_file(self, path: str) -> BinaryIO | None:
        """Get a file from the control dir with a specific name.

        Args:
          path: The path to the file, relative to the control dir.
        Returns: An open file object, or None if the file does not exist.
        """
        path = path.lstrip(os.path.sep)
        try:
            return open(os.path.join(self.controldir(), path), "rb")
        except FileNotFoundError:
            return None

    def get_config(self) -> "ConfigFile":
        """Retrieve the config object.

        Returns: `ConfigFile` object for the repository's ``config`` file.
        """
        from .config import ConfigFile

        path = os.path.join(self._controldir, "config")
        try:
            return ConfigFile.from_path(path)
        except FileNotFoundError:
            ret = ConfigFile()
            ret.path = path
            return ret

    @classmethod
    def init_bare(
        cls,
        path: str | bytes | os.PathLike[str],
        *,
        mkdir: bool = False,
        config: "StackedConfig | None" = None,
        default_branch: bytes | None = None,
    ) -> "Repo":
        """Create a new bare repository.

        ``path`` should already exist and be an empty directory.

        Args:
          path: Path to create bare repository in
          mkdir: Whether to create the directory
          config: Configuration used to look up init.defaultBranch
          default_branch: Branch HEAD points at; overrides the configuration
        Returns: a `Repo` instance
        """
        path = os.fspath(path)
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        if mkdir:
            os.mkdir(path)
        for d in BASE_DIRECTORIES:
            os.mkdir(os.path.join(path, *d))
        DiskObjectStore.init(os.path.join(path, OBJECTDIR))
        ret = cls(path)
        ret.refs.set_symbolic_ref(
            HEADREF, local_branch_name(_default_branch(config, default_branch))
        )
        ret._init_files()
        return ret

    create = init_bare


def _default_branch(
    config: "StackedConfig | None", default_branch: bytes | None
) -> bytes:
    if default_branch is not None:
        return default_branch
    if config is None:
        from .config import StackedConfig

        config = StackedConfig.default()
    try:
        return config.get("init", "defaultBranch")
    except KeyError:
        return DEFAULT_BRANCH


class MemoryRepo(BaseRepo):
    """Repo that stores refs, objects, and named files in memory."""

    object_store: MemoryObjectStore
    refs: DictRefsContainer

    def __init__(self) -> None:
        """Create a new repository in memory."""
        from .config import ConfigFile

        BaseRepo.__init__(self, MemoryObjectStore(), DictRefsContainer({}))
        self._named_files: dict[str, bytes] = {}
        self._config = ConfigFile()

    def _put_named_file(self, path: str, contents: bytes) -> None:
        self._named_files[path] = contents

    def get_named_file(self, path: str) -> BytesIO | None:
        """Get a file from the control dir with a specific name."""
        contents = self._named_files.get(path, None)
        if contents is None:
            return None
        return BytesIO(contents)

    def _init_config(self, config: "ConfigFile") -> None:
        self._config = config

    def get_config(self) -> "ConfigFile":
        """Retrieve the config object.

        Returns: `ConfigFile` object.
        """
        return self._config

    @classmethod
    def init_bare(
        cls,
        objects: Iterable[ShaFile] = (),
        refs: Mapping[bytes, ObjectID] | None = None,
        *,
        default_branch: bytes = DEFAULT_BRANCH,
    ) -> "MemoryRepo":
        """Create a new bare repository in memory.

        Args:
          objects: Objects for the new repository,
            as iterable
          refs: Refs as dictionary, mapping names
            to object SHA1s
          default_branch: Branch HEAD points at
        """
        ret = cls()
        for obj in objects:
            ret.object_store.add_object(obj)
        ret.refs.set_symbolic_ref(HEADREF, local_branch_name(default_branch))
        for refname, sha in (refs or {}).items():
            ret.refs.add_if_new(refname, sha)
        ret._init_files()
        return ret
