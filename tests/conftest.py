"""Shared test fixtures for bootforge.

The toolchain under test is a small Python script that behaves like a
self-hosting compiler: it copies itself into ``<out>/bin/toolchain``, writes
"generated code" derived from the sources, embeds its own build path, and
drops volatile provenance under ``meta/``. Control files in the source tree
make it misbehave:

``FAIL_COMPILE``  exit 1 with diagnostics (contents: empty = every stage,
                  or a stage number)
``CRASH``         die from SIGKILL (same contents rule)
``HANG``          sleep until killed (same contents rule)
``FAIL_TARGET``   exit 1 when building for the triple it contains
``NO_ENTRYPOINT`` succeed without producing ``bin/toolchain``
``MISCOMPILE``    output depends on the builder's generation, so the final
                  stage never reaches a fixed point
``FAIL_TESTS``    test mode exits 1
"""

from __future__ import annotations

import hashlib
import io
import sys
import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from bootforge.config import BootforgeSettings
from bootforge.core.context import BuildContext
from bootforge.core.orchestrator import Orchestrator
from bootforge.models.config import BuildConfig
from bootforge.models.manifest import SnapshotManifest
from bootforge.models.platforms import Platform

FAKE_TOOLCHAIN = '''#!@PYTHON@
"""Fake self-hosting toolchain for the bootforge test-suite."""
import argparse
import hashlib
import json
import os
import shutil
import signal
import sys
import time

parser = argparse.ArgumentParser()
parser.add_argument("--stage", type=int, required=True)
parser.add_argument("--host", required=True)
parser.add_argument("--target", required=True)
parser.add_argument("--source", required=True)
parser.add_argument("--out", required=True)
parser.add_argument("--mode", choices=["build", "test"], required=True)
parser.add_argument("--flag", action="append", default=[])
args = parser.parse_args()

self_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def control(name):
    path = os.path.join(args.source, name)
    if not os.path.exists(path):
        return None
    with open(path) as fh:
        return fh.read().strip()


def applies(value):
    return value is not None and value in ("", str(args.stage))


if args.mode == "test":
    if control("FAIL_TESTS") is not None:
        print("test suite: 1 failed, 11 passed", file=sys.stderr)
        sys.exit(1)
    print("test suite: 12 passed for " + args.target)
    sys.exit(0)

if applies(control("FAIL_COMPILE")):
    print("main.src:1:1: error: expected item, found `}`", file=sys.stderr)
    sys.exit(1)
if control("FAIL_TARGET") == args.target:
    print("codegen: unsupported target " + args.target, file=sys.stderr)
    sys.exit(1)
if applies(control("CRASH")):
    print("internal compiler error: unexpected panic", file=sys.stderr)
    sys.stderr.flush()
    os.kill(os.getpid(), signal.SIGKILL)
if applies(control("HANG")):
    time.sleep(600)

os.makedirs(os.path.join(args.out, "lib"), exist_ok=True)
os.makedirs(os.path.join(args.out, "meta"), exist_ok=True)
if control("NO_ENTRYPOINT") is None:
    os.makedirs(os.path.join(args.out, "bin"), exist_ok=True)
    entry = os.path.join(args.out, "bin", "toolchain")
    shutil.copyfile(os.path.abspath(__file__), entry)
    os.chmod(entry, 0o755)

digest = hashlib.sha256()
for dirpath, dirnames, filenames in os.walk(args.source):
    dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
    for name in sorted(filenames):
        full = os.path.join(dirpath, name)
        digest.update(os.path.relpath(full, args.source).encode())
        with open(full, "rb") as fh:
            digest.update(fh.read())

generation_file = os.path.join(self_root, "meta", "generation")
generation = 0
if os.path.exists(generation_file):
    with open(generation_file) as fh:
        generation = int(fh.read())

codegen = [
    "sources=" + digest.hexdigest(),
    "host=" + args.host,
    "target=" + args.target,
    "flags=" + ",".join(args.flag),
]
if control("MISCOMPILE") is not None:
    codegen.append("generation=%d" % generation)

with open(os.path.join(args.out, "lib", "codegen.txt"), "w") as fh:
    fh.write("\\n".join(codegen) + "\\n")
with open(os.path.join(args.out, "lib", "paths.txt"), "w") as fh:
    fh.write("prefix=" + os.path.abspath(args.out) + "\\n")
with open(os.path.join(args.out, "meta", "generation"), "w") as fh:
    fh.write(str(generation + 1))
with open(os.path.join(args.out, "meta", "build-info.json"), "w") as fh:
    json.dump({"built_at": time.time(), "argv": sys.argv, "env": dict(os.environ)}, fh)
print("compiled stage %d for %s" % (args.stage, args.target))
'''


def toolchain_script() -> str:
    return FAKE_TOOLCHAIN.replace("@PYTHON@", sys.executable)


def sha256_of(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def make_stage0_archive(dest: Path, *, script: str | None = None, top: str = "stage0") -> Path:
    """Write a tar.gz holding ``<top>/bin/toolchain`` (or a flat ``bin/`` when ``top`` is empty)."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    data = (script if script is not None else toolchain_script()).encode()
    prefix = f"{top}/" if top else ""
    with tarfile.open(dest, "w:gz") as tar:
        for dirname in filter(None, (top, f"{prefix}bin")):
            info = tarfile.TarInfo(dirname)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            tar.addfile(info)
        info = tarfile.TarInfo(f"{prefix}bin/toolchain")
        info.mode = 0o755
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))
    return dest


# ---------------------------------------------------------------------------
# Platforms
# ---------------------------------------------------------------------------


@pytest.fixture
def host() -> Platform:
    """The platform the tests run on; default host for every run."""
    return Platform.current()


@pytest.fixture
def other_host(host: Platform) -> Platform:
    """A second host triple distinct from the current one."""
    candidate = Platform.parse("aarch64-unknown-linux-gnu")
    if candidate == host:
        candidate = Platform.parse("x86_64-unknown-linux-gnu")
    return candidate


@pytest.fixture
def cross_target(host: Platform) -> Platform:
    candidate = Platform.parse("riscv64gc-unknown-linux-gnu")
    assert candidate != host
    return candidate


# ---------------------------------------------------------------------------
# Stage 0, manifests and sources
# ---------------------------------------------------------------------------


@pytest.fixture
def toolchain_source() -> str:
    """The fake toolchain script with this interpreter in its shebang."""
    return toolchain_script()


@pytest.fixture
def make_archive() -> Callable[..., Path]:
    """Factory: write a stage-0 archive at a given path."""
    return make_stage0_archive


@pytest.fixture
def file_sha256() -> Callable[[Path], str]:
    return sha256_of


@pytest.fixture
def stage0_archive(tmp_path: Path) -> Path:
    return make_stage0_archive(tmp_path / "dist" / "stage0-toolchain.tar.gz")


@pytest.fixture
def stage0_checksum(stage0_archive: Path) -> str:
    return sha256_of(stage0_archive)


@pytest.fixture
def make_manifest(stage0_archive: Path, stage0_checksum: str) -> Callable[..., SnapshotManifest]:
    """Factory: a manifest serving the fake stage 0 over file:// for ``platforms``."""

    def _factory(
        *platforms: Platform,
        checksum: str | None = None,
        url: str | None = None,
        format_version: int = 1,
        overrides: dict[Platform, dict[str, Any]] | None = None,
    ) -> SnapshotManifest:
        table: dict[str, Any] = {}
        for platform in platforms:
            entry = {
                "url": url or stage0_archive.as_uri(),
                "checksum": f"sha256:{checksum or stage0_checksum}",
                "format-version": format_version,
            }
            entry.update((overrides or {}).get(platform, {}))
            table[platform.triple] = entry
        return SnapshotManifest.from_mapping({"platforms": table})

    return _factory


@pytest.fixture
def manifest(make_manifest: Callable[..., SnapshotManifest], host: Platform) -> SnapshotManifest:
    return make_manifest(host)


@pytest.fixture
def manifest_file(tmp_path: Path, stage0_archive: Path, stage0_checksum: str, host: Platform) -> Path:
    path = tmp_path / "stage0.toml"
    path.write_text(
        f'[platforms."{host.triple}"]\n'
        f'url = "{stage0_archive.as_uri()}"\n'
        f'checksum = "sha256:{stage0_checksum}"\n'
        "format-version = 1\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A small compiler source tree."""
    root = tmp_path / "src"
    (root / "lib").mkdir(parents=True)
    (root / "main.src").write_text("fn main() { emit(core::hello()); }\n", encoding="utf-8")
    (root / "lib" / "core.src").write_text("fn hello() -> str { \"hello\" }\n", encoding="utf-8")
    return root


# ---------------------------------------------------------------------------
# Contexts and orchestrators
# ---------------------------------------------------------------------------


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def ctx(cache_root: Path) -> BuildContext:
    """A build context over an isolated cache root."""
    return BuildContext(cache_root, run_id="bf-test-run-001")


@pytest.fixture
def settings() -> BootforgeSettings:
    return BootforgeSettings(_env_file=None, proxy=None)


@pytest.fixture
def make_orchestrator(
    cache_root: Path,
    source_tree: Path,
    manifest: SnapshotManifest,
    settings: BootforgeSettings,
) -> Callable[..., Orchestrator]:
    """Factory: an Orchestrator over the shared cache root and sources.

    Every call builds a fresh context, the way separate CLI invocations do.
    """

    def _factory(
        *,
        manifest_override: SnapshotManifest | None = None,
        cache: Path | None = None,
        client: httpx.Client | None = None,
        **config: Any,
    ) -> Orchestrator:
        config.setdefault("source_dir", source_tree)
        build_config = BuildConfig(cache_dir=cache or cache_root, **config)
        return Orchestrator(
            build_config,
            settings=settings,
            manifest=manifest_override or manifest,
            client=client,
            sleep=lambda _seconds: None,
        )

    return _factory
