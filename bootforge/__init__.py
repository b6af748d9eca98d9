"""Bootforge: a staged, cached, verifiable bootstrap build orchestrator.

Builds a self-hosting toolchain from a pinned stage-0 snapshot:
  - Stage 0 fetched per host and verified against a checksum manifest
  - Stage N built by stage N-1, per (host, target), in dependency order
  - Content-fingerprinted build cache shared safely between processes
  - Fixed-point validation: the final stage rebuilt by itself must match
  - Bounded parallelism across independent targets
"""

__version__ = "0.1.0"
__description__ = "Staged bootstrap build orchestrator for self-hosting toolchains"

from bootforge.core.orchestrator import Orchestrator
from bootforge.cli.app import app as cli

__all__ = ["Orchestrator", "cli", "__version__"]
