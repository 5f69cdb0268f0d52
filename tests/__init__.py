# __init__.py -- The tests for treegraft
# Copyright (C) 2007 James Westby <jw+debian@jameswestby.net>
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

"""Tests for treegraft."""

__all__ = [
    "SkipTest",
    "TestCase",
    "expectedFailure",
    "skipIf",
]

import os
import shutil
import tempfile
import unittest
from unittest import SkipTest, expectedFailure, skipIf
from unittest import TestCase as _TestCase


class TestCase(_TestCase):
    """TestCase that keeps the user's git configuration out of the way.

    HOME points at an empty directory, system and global config files are
    ignored, and a fixed identity is used for commits.
    """

    def setUp(self) -> None:
        super().setUp()
        self.overrideEnv("HOME", self._make_home())
        self.overrideEnv("XDG_CONFIG_HOME", None)
        self.overrideEnv("GIT_CONFIG_GLOBAL", None)
        self.overrideEnv("GIT_CONFIG_SYSTEM", None)
        self.overrideEnv("GIT_CONFIG_NOSYSTEM", "1")
        self.overrideEnv("GIT_TRACE", None)
        self.overrideEnv("GIT_AUTHOR_NAME", "Test Author")
        self.overrideEnv("GIT_AUTHOR_EMAIL", "author@example.com")
        self.overrideEnv("GIT_COMMITTER_NAME", "Test Committer")
        self.overrideEnv("GIT_COMMITTER_EMAIL", "committer@example.com")

    def _make_home(self) -> str:
        home = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, home)
        return home

    def overrideEnv(self, name: str, value: str | None) -> None:
        """Set or unset an environment variable for the duration of a test."""

        def restore() -> None:
            if oldval is not None:
                os.environ[name] = oldval
            else:
                os.environ.pop(name, None)

        oldval = os.environ.get(name)
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)
        self.addCleanup(restore)


def self_test_suite() -> unittest.TestSuite:
    names = [
        "cli",
        "config",
        "file",
        "gc",
        "log_utils",
        "merge",
        "merge_base",
        "mutate",
        "object_store",
        "objects",
        "porcelain",
        "publish",
        "refs",
        "repository",
    ]
    module_names = ["tests.test_" + name for name in names]
    loader = unittest.TestLoader()
    return loader.loadTestsFromNames(module_names)


def test_suite() -> unittest.TestSuite:
    result = unittest.TestSuite()
    result.addTests(self_test_suite())
    return result
