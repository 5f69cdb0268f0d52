# log_utils.py -- Logging utilities for treegraft
# Copyright (C) 2010 Google, Inc.
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

"""Logging utilities for treegraft.

treegraft is mostly used as a library, so nothing is printed unless the
application configures logging. A no-op handler is attached to the
``treegraft`` logger at import time to keep the logging module quiet about
missing handlers.

Modules only need ``getLogger`` from here; anything else can come straight
from the standard logging module.
"""

__all__ = [
    "default_logging_config",
    "getLogger",
    "remove_null_handler",
]

import logging
import os
import sys

getLogger = logging.getLogger

TRACE_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"


class _NullHandler(logging.Handler):
    """No-op logging handler to avoid unexpected logging warnings."""

    def emit(self, record: logging.LogRecord) -> None:
        pass


_NULL_HANDLER = _NullHandler()
_TREEGRAFT_LOGGER = getLogger("treegraft")
_TREEGRAFT_LOGGER.addHandler(_NULL_HANDLER)


def _get_trace_target() -> str | int | None:
    """Work out where GIT_TRACE output should go.

    Returns:
        - None if tracing is disabled
        - 2 for stderr ("1", "2" or "true")
        - an int between 3 and 9 for that file descriptor
        - an absolute path for a file or directory
    """
    trace_value = os.environ.get("GIT_TRACE", "")
    lowered = trace_value.lower()

    if lowered in ("", "0", "false"):
        return None
    if lowered in ("1", "2", "true"):
        return 2

    if trace_value.isdigit() and 3 <= int(trace_value) <= 9:
        return int(trace_value)

    if os.path.isabs(trace_value):
        return trace_value

    # Relative paths and anything else are ignored, as git does
    return None


def _configure_logging_from_trace() -> bool:
    """Configure logging from the GIT_TRACE environment variable.

    Returns True if tracing was set up, False otherwise.
    """
    target = _get_trace_target()
    if target is None:
        return False

    if target == 2:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr, format=TRACE_FORMAT)
        return True

    try:
        if isinstance(target, int):
            stream = os.fdopen(target, "w", buffering=1)
            logging.basicConfig(level=logging.DEBUG, stream=stream, format=TRACE_FORMAT)
        else:
            if os.path.isdir(target):
                target = os.path.join(target, f"trace.{os.getpid()}")
            logging.basicConfig(
                level=logging.DEBUG, filename=target, filemode="a", format=TRACE_FORMAT
            )
    except OSError as e:
        sys.stderr.write(f"Warning: Failed to open GIT_TRACE target {target}: {e}\n")
        return False
    return True


def default_logging_config() -> None:
    """Set up the default treegraft loggers.

    GIT_TRACE takes precedence when set; otherwise INFO and above go to
    stderr.
    """
    remove_null_handler()
    if not _configure_logging_from_trace():
        logging.basicConfig(
            level=logging.INFO,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)s: %(message)s",
        )


def remove_null_handler() -> None:
    """Remove the null handler from the treegraft logger.

    Callers that set up logging some other way can call this first to skip
    the _NullHandler overhead.
    """
    _TREEGRAFT_LOGGER.removeHandler(_NULL_HANDLER)
