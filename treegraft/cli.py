#
# treegraft - Simple command-line interface to treegraft
# Copyright (C) 2008-2011 Jelmer Vernooij <jelmer@jelmer.uk>
# vim: expandtab
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

"""Simple command-line interface to treegraft.

Each subcommand maps onto one function in treegraft.porcelain. Failures
are reported as a single ``error: <message>`` line on stderr with exit
status 1.
"""

__all__ = [
    "Command",
    "main",
    "signal_int",
    "signal_quit",
    "to_display_str",
]

import argparse
import json
import logging
import os
import signal
import stat
import sys
import types
from collections.abc import Sequence

from . import porcelain
from .errors import (
    AlreadyExistsError,
    InvalidPathError,
    IsDirectoryError,
    MergeConflict,
    NotFoundError,
    NotGitRepository,
    ObjectStoreFailure,
    RefFormatError,
    StaleRefError,
    TypeMismatchError,
    WrongObjectException,
)
from .file import FileLocked
from .log_utils import _configure_logging_from_trace
from .refs import SymrefLoop
from .repo import DefaultIdentityNotFound, InvalidUserIdentity

logger = logging.getLogger(__name__)

# Failures reported as "error: <message>" rather than a traceback
_USER_ERRORS = (
    AlreadyExistsError,
    DefaultIdentityNotFound,
    FileExistsError,
    FileLocked,
    InvalidPathError,
    InvalidUserIdentity,
    IsDirectoryError,
    MergeConflict,
    NotFoundError,
    NotGitRepository,
    ObjectStoreFailure,
    RefFormatError,
    StaleRefError,
    SymrefLoop,
    TypeMismatchError,
    WrongObjectException,
)


def to_display_str(value: bytes | str) -> str:
    """Convert a bytes or string value to a display string.

    Args:
        value: The value to convert (bytes or str)

    Returns:
        A string suitable for display
    """
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    return value


def signal_int(signal: int, frame: types.FrameType | None) -> None:
    """Handle interrupt signal by exiting.

    Args:
        signal: Signal number
        frame: Current stack frame
    """
    sys.exit(1)


def signal_quit(signal: int, frame: types.FrameType | None) -> None:
    """Handle quit signal by entering debugger.

    Args:
        signal: Signal number
        frame: Current stack frame
    """
    import pdb

    pdb.set_trace()


def _add_repo_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-R", "--repo", default=".", help="Path to the repository (default: .)"
    )


class Command:
    """A treegraft subcommand."""

    def run(self, args: Sequence[str]) -> int | None:
        """Run the command."""
        raise NotImplementedError(self.run)


class cmd_init(Command):
    """Create an empty bare repository."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the init command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft init")
        parser.add_argument(
            "--initial-commit",
            action="store_true",
            help="Seed the default branch with a README.md",
        )
        parser.add_argument(
            "-b", "--initial-branch", help="Name of the default branch"
        )
        parser.add_argument(
            "path", nargs="?", default=os.getcwd(), help="Repository path"
        )
        parsed_args = parser.parse_args(args)

        with porcelain.init(
            parsed_args.path,
            default_branch=parsed_args.initial_branch,
            initial_commit=parsed_args.initial_commit,
        ) as r:
            logger.info("Initialized empty repository in %s", r.path)


class cmd_create_branch(Command):
    """Create a new branch."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the create-branch command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft create-branch")
        _add_repo_argument(parser)
        parser.add_argument("name", help="Name of the new branch")
        parser.add_argument(
            "from_ref", nargs="?", default="HEAD", help="Ref to branch from"
        )
        parsed_args = parser.parse_args(args)

        sha = porcelain.create_branch(
            parsed_args.repo, parsed_args.name, parsed_args.from_ref
        )
        sys.stdout.write(f"{sha.decode('ascii')}\n")


class cmd_delete_branch(Command):
    """Delete a branch."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the delete-branch command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft delete-branch")
        _add_repo_argument(parser)
        parser.add_argument("name", help="Name of the branch")
        parsed_args = parser.parse_args(args)

        porcelain.delete_branch(parsed_args.repo, parsed_args.name)


class cmd_list_branches(Command):
    """List branches."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the list-branches command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft list-branches")
        _add_repo_argument(parser)
        parsed_args = parser.parse_args(args)

        for branch in porcelain.branch_list(parsed_args.repo):
            sys.stdout.write(f"{to_display_str(branch)}\n")


class cmd_put_file(Command):
    """Write a file on a branch and commit it."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the put-file command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft put-file")
        _add_repo_argument(parser)
        parser.add_argument("-m", "--message", help="Commit message")
        parser.add_argument("ref", help="Branch to commit to")
        parser.add_argument("path", help="Path of the file in the tree")
        source = parser.add_mutually_exclusive_group(required=True)
        source.add_argument("content", nargs="?", help="New file contents")
        source.add_argument(
            "--file", dest="source_file", help="Read the contents from this file"
        )
        parsed_args = parser.parse_args(args)

        if parsed_args.source_file is not None:
            with open(parsed_args.source_file, "rb") as f:
                content = f.read()
        else:
            content = parsed_args.content.encode("utf-8")
        message = None
        if parsed_args.message is not None:
            message = parsed_args.message.encode("utf-8")

        sha = porcelain.put_file(
            parsed_args.repo,
            parsed_args.ref,
            parsed_args.path,
            content,
            message=message,
        )
        sys.stdout.write(f"{sha.decode('ascii')}\n")


class cmd_remove_file(Command):
    """Remove a file or directory from a branch and commit it."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the remove-file command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft remove-file")
        _add_repo_argument(parser)
        parser.add_argument("-m", "--message", help="Commit message")
        parser.add_argument("ref", help="Branch to commit to")
        parser.add_argument("path", help="Path to remove")
        parsed_args = parser.parse_args(args)

        message = None
        if parsed_args.message is not None:
            message = parsed_args.message.encode("utf-8")
        sha = porcelain.remove_file(
            parsed_args.repo, parsed_args.ref, parsed_args.path, message=message
        )
        sys.stdout.write(f"{sha.decode('ascii')}\n")


class cmd_read_file(Command):
    """Print the contents of a file."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the read-file command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft read-file")
        _add_repo_argument(parser)
        parser.add_argument("ref", help="Branch, ref or commit to read from")
        parser.add_argument("path", help="Path of the file")
        parsed_args = parser.parse_args(args)

        data = porcelain.read_file(parsed_args.repo, parsed_args.ref, parsed_args.path)
        if porcelain.is_binary(data):
            logger.info("Binary file %s not shown", parsed_args.path)
            return
        sys.stdout.buffer.write(data)


def format_entry(name: bytes, mode: int, sha: bytes) -> str:
    """Format a directory entry as ``mode type short-sha name``."""
    if stat.S_ISDIR(mode):
        kind = "tree"
        suffix = "/"
    else:
        kind = "blob"
        suffix = ""
    return (
        f"{mode:06o} {kind} {sha[:7].decode('ascii')} {to_display_str(name)}{suffix}"
    )


class cmd_list_files(Command):
    """List the contents of a directory."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the list-files command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft list-files")
        _add_repo_argument(parser)
        parser.add_argument(
            "ref", nargs="?", default="HEAD", help="Branch, ref or commit to list"
        )
        parser.add_argument("path", nargs="?", default="", help="Directory to list")
        parsed_args = parser.parse_args(args)

        for entry in porcelain.list_directory(
            parsed_args.repo, parsed_args.ref, parsed_args.path
        ):
            sys.stdout.write(format_entry(entry.path, entry.mode, entry.sha) + "\n")


class cmd_merge(Command):
    """Merge one branch into another."""

    def run(self, args: Sequence[str]) -> int | None:
        """Execute the merge command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft merge")
        _add_repo_argument(parser)
        parser.add_argument(
            "--content-merge",
            action="store_true",
            help="Try a line based merge of conflicting files",
        )
        parser.add_argument("-m", "--message", help="Commit message")
        parser.add_argument("source", help="Branch to merge")
        parser.add_argument("dest", help="Branch to merge into")
        parser.add_argument(
            "resolutions",
            nargs="?",
            help="JSON object mapping conflicting paths to their contents",
        )
        parsed_args = parser.parse_args(args)

        resolutions = None
        if parsed_args.resolutions:
            try:
                resolutions = json.loads(parsed_args.resolutions)
            except json.JSONDecodeError as e:
                sys.stderr.write(f"error: invalid resolutions: {e}\n")
                return 1
            if not isinstance(resolutions, dict) or not all(
                isinstance(v, str) for v in resolutions.values()
            ):
                sys.stderr.write(
                    "error: resolutions must be a JSON object of path to contents\n"
                )
                return 1
        message = None
        if parsed_args.message is not None:
            message = parsed_args.message.encode("utf-8")

        sha = porcelain.merge_branches(
            parsed_args.repo,
            parsed_args.source,
            parsed_args.dest,
            resolutions,
            content_merge=parsed_args.content_merge,
            message=message,
        )
        sys.stdout.write(f"{sha.decode('ascii')}\n")
        return None


class cmd_gc(Command):
    """Remove unreachable objects from the repository."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the gc command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft gc")
        _add_repo_argument(parser)
        parser.add_argument(
            "--dry-run",
            "-n",
            action="store_true",
            help="Only report what would be done",
        )
        parser.add_argument(
            "--grace-period",
            type=int,
            default=1209600,
            help="Keep unreachable objects younger than this many seconds "
            "(default: 2 weeks)",
        )
        parsed_args = parser.parse_args(args)

        stats = porcelain.gc(
            parsed_args.repo,
            grace_period=parsed_args.grace_period,
            dry_run=parsed_args.dry_run,
        )
        if parsed_args.dry_run:
            logger.info("Dry run results:")
        else:
            logger.info("Garbage collection complete:")
        logger.info("  Pruned %d unreachable objects", len(stats.pruned_objects))
        logger.info("  Freed %d bytes", stats.bytes_freed)


class cmd_help(Command):
    """Display help information."""

    def run(self, args: Sequence[str]) -> None:
        """Execute the help command.

        Args:
            args: Command line arguments
        """
        parser = argparse.ArgumentParser(prog="treegraft help")
        parser.parse_args(args)

        logger.info("Available commands:")
        for cmd in sorted(commands):
            logger.info("  %-16s %s", cmd, commands[cmd].__doc__)


commands: dict[str, type[Command]] = {
    "create-branch": cmd_create_branch,
    "delete-branch": cmd_delete_branch,
    "gc": cmd_gc,
    "help": cmd_help,
    "init": cmd_init,
    "list-branches": cmd_list_branches,
    "list-files": cmd_list_files,
    "merge": cmd_merge,
    "put-file": cmd_put_file,
    "read-file": cmd_read_file,
    "remove-file": cmd_remove_file,
}


def main(argv: Sequence[str] | None = None) -> int | None:
    """Main entry point for the treegraft CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code or None
    """
    if argv is None:
        argv = sys.argv[1:]

    # Try to configure from GIT_TRACE, fall back to default if it fails
    if not _configure_logging_from_trace():
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
        )

    if not argv:
        cmd_help().run([])
        return 1

    cmd = argv[0]
    cmd_args = argv[1:]

    try:
        cmd_kls = commands[cmd]
    except KeyError:
        sys.stderr.write(f"error: no such subcommand: {cmd}\n")
        return 1
    try:
        return cmd_kls().run(cmd_args)
    except _USER_ERRORS as e:
        sys.stderr.write(f"error: {e}\n")
        return 1


def _main() -> None:
    if "TREEGRAFT_PDB" in os.environ and getattr(signal, "SIGQUIT", None):
        signal.signal(signal.SIGQUIT, signal_quit)  # type: ignore[attr-defined,unused-ignore]
    signal.signal(signal.SIGINT, signal_int)

    sys.exit(main())


if __name__ == "__main__":
    _main()
