"""Bootforge CLI: Typer-based command-line interface.

Provides the ``bootforge`` command with the ``build``, ``test``,
``install``, ``clean``, ``validate`` and ``verify-cache`` verbs.

All output uses Rich for formatted terminal display.
"""
