"""Entry point for running treegraft as a module.

This module allows treegraft to be run as a Python module using the -m flag:
    python -m treegraft

It serves as the main entry point for the treegraft command-line interface.
"""

from . import cli

if __name__ == "__main__":
    cli._main()
