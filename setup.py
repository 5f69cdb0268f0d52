#!/usr/bin/python3
# Setup file for treegraft
# Copyright (C) 2008-2022 Jelmer Vernooĳ <jelmer@jelmer.uk>
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

tests_require = ["pytest"]


setup(
    name="treegraft",
    version="0.1.0",
    description="Edit, merge and publish git trees without a working copy",
    license="Apache-2.0 OR GPL-2.0-or-later",
    python_requires=">=3.10",
    packages=["treegraft"],
    package_data={"": ["py.typed"]},
    install_requires=["merge3"],
    extras_require={"test": tests_require},
    entry_points={
        "console_scripts": [
            "treegraft=treegraft.cli:_main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
    ],
)
