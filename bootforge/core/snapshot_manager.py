"""Stage-0 snapshot fetching and verification.

The snapshot is the trust root of the whole bootstrap: a bad stage 0 would
silently poison every later stage. So an archive is only ever extracted
after its SHA-256 matches the manifest, a mismatch is fatal for that
platform, and the corrupted download is deleted without being installed.

Local layout::

    {cache}/snapshots/{triple}/{digest}/toolchain/...   extracted bundle
    {cache}/snapshots/{triple}/{digest}/verified.json   verification marker
"""

from __future__ import annotations

import hashlib
import logging
import shutil
import tarfile
import time
import uuid
from collections.abc import Callable
from pathlib import Path
from urllib.parse import unquote, urlparse

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from bootforge.core.context import BuildContext
from bootforge.core.hasher import tree_digest
from bootforge.errors import (
    BootstrapError,
    ChecksumMismatchError,
    NetworkError,
    SnapshotFormatError,
)
from bootforge.models.artifacts import TOOLCHAIN_ENTRYPOINT, Artifact
from bootforge.models.manifest import SnapshotEntry, SnapshotManifest
from bootforge.models.platforms import Platform

logger = logging.getLogger(__name__)

_CHUNK = 1024 * 1024
_ARCHIVE_SUFFIXES = (".tar", ".tar.gz", ".tgz", ".tar.xz", ".tar.bz2")


class _RetryableFetchError(Exception):
    """Internal: a fetch attempt failed in a way worth retrying."""


class VerifiedMarker(BaseModel):
    """Written beside an extracted snapshot once its checksum has matched."""

    model_config = ConfigDict(frozen=True)

    platform: str
    checksum: str
    url: str
    tree_digest: str


class SnapshotManager:
    """Ensures a verified stage-0 toolchain exists locally for a platform.

    Parameters
    ----------
    manifest:
        The run's snapshot manifest (read-only).
    ctx:
        Build context supplying the cache root and journal.
    retry_count:
        Total download attempts per platform before giving up.
    mirror:
        Base URL that replaces the manifest URL's origin.
    client:
        Pre-built ``httpx.Client`` (tests inject one with a mock transport).
    proxy:
        Proxy URL handed to the default client.
    sleep:
        Backoff sleeper, injectable for tests.
    """

    def __init__(
        self,
        manifest: SnapshotManifest,
        ctx: BuildContext,
        *,
        retry_count: int = 3,
        mirror: str | None = None,
        client: httpx.Client | None = None,
        proxy: str | None = None,
        timeout: float = 30.0,
        backoff_base: float = 0.5,
        backoff_cap: float = 8.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._manifest = manifest
        self._ctx = ctx
        self._retry_count = max(1, retry_count)
        self._mirror = mirror.rstrip("/") if mirror else None
        self._client = client
        self._owns_client = client is None
        self._proxy = proxy
        self._timeout = timeout
        self._backoff_base = backoff_base
        self._backoff_cap = backoff_cap
        self._sleep = sleep
        # Platforms that failed verification stay unusable for the run.
        self._poisoned: dict[str, ChecksumMismatchError] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ensure_stage0(self, platform: Platform) -> Artifact:
        """Return the verified stage-0 artifact for ``platform``.

        Raises PlatformUnsupportedError, SnapshotFormatError,
        ChecksumMismatchError or NetworkError.
        """
        entry = self.check_supported(platform)
        if platform.triple in self._poisoned:
            raise self._poisoned[platform.triple]

        local = self._local_artifact(platform, entry)
        if local is not None:
            logger.info("Using verified stage-0 snapshot for %s", platform)
            self._ctx.record("snapshot_reused", stage=0, fingerprint=entry.digest, detail=str(platform))
            return local

        url = self.resolve_url(entry)
        try:
            artifact = self._fetch_and_install(platform, entry, url)
        except ChecksumMismatchError as exc:
            self._poisoned[platform.triple] = exc
            raise
        except BootstrapError as exc:
            raise exc.with_context(stage=0, platform=platform)
        self._ctx.record("snapshot_fetched", stage=0, fingerprint=entry.digest, detail=str(platform))
        return artifact

    def check_supported(self, platform: Platform) -> SnapshotEntry:
        """Manifest lookup with no network access; used during planning."""
        entry = self._manifest.lookup(platform)
        if not entry.format_supported:
            raise SnapshotFormatError(
                f"Snapshot format version {entry.format_version} is not supported",
                stage=0,
                platform=platform,
            )
        return entry

    def resolve_url(self, entry: SnapshotEntry) -> str:
        """Apply the mirror override, keeping the archive file name."""
        if not self._mirror:
            return entry.url
        name = Path(urlparse(entry.url).path).name
        return f"{self._mirror}/{name}"

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------
    # Local copies
    # ------------------------------------------------------------------

    def _snapshot_dir(self, platform: Platform, entry: SnapshotEntry) -> Path:
        return self._ctx.snapshots_dir / platform.triple / entry.digest

    def _local_artifact(self, platform: Platform, entry: SnapshotEntry) -> Artifact | None:
        base = self._snapshot_dir(platform, entry)
        marker_path = base / "verified.json"
        bundle = base / "toolchain"
        try:
            marker = VerifiedMarker.model_validate_json(marker_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError):
            return None
        if marker.checksum != entry.checksum or not bundle.is_dir():
            return None
        digest, _ = tree_digest(bundle)
        if digest != marker.tree_digest:
            logger.warning("Extracted stage-0 snapshot for %s was modified; refetching", platform)
            shutil.rmtree(base, ignore_errors=True)
            return None
        return self._artifact(platform, entry, bundle, digest)

    @staticmethod
    def _artifact(platform: Platform, entry: SnapshotEntry, bundle: Path, digest: str) -> Artifact:
        return Artifact(
            stage=0,
            host=platform,
            target=platform,
            fingerprint=entry.digest,
            path=bundle,
            tree_digest=digest,
        )

    # ------------------------------------------------------------------
    # Fetch, verify, install
    # ------------------------------------------------------------------

    def _fetch_and_install(self, platform: Platform, entry: SnapshotEntry, url: str) -> Artifact:
        base = self._snapshot_dir(platform, entry)
        base.parent.mkdir(parents=True, exist_ok=True)
        staging = base.parent / f".tmp-{uuid.uuid4().hex[:8]}"
        staging.mkdir()
        try:
            archive = staging / (Path(urlparse(url).path).name or "snapshot.tar.gz")
            actual = self._download_with_retries(platform, url, archive)
            if actual != entry.digest:
                archive.unlink(missing_ok=True)
                logger.error(
                    "Checksum mismatch for %s: expected %s, got %s", platform, entry.digest, actual
                )
                raise ChecksumMismatchError(
                    f"Stage-0 archive from {url} has sha256:{actual}, "
                    f"manifest requires {entry.checksum}",
                    stage=0,
                    platform=platform,
                    fingerprint=entry.digest,
                )

            bundle = staging / "toolchain"
            self._extract(archive, bundle, platform)
            archive.unlink()
            digest, _ = tree_digest(bundle)
            marker = VerifiedMarker(
                platform=platform.triple, checksum=entry.checksum, url=url, tree_digest=digest
            )
            (staging / "verified.json").write_text(marker.model_dump_json(indent=2) + "\n", encoding="utf-8")

            if base.exists():
                shutil.rmtree(base)
            staging.rename(base)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        logger.info("Installed verified stage-0 snapshot for %s", platform)
        return self._artifact(platform, entry, base / "toolchain", digest)

    def _extract(self, archive: Path, dest: Path, platform: Platform) -> None:
        if not archive.name.endswith(_ARCHIVE_SUFFIXES):
            raise SnapshotFormatError(
                f"Unsupported snapshot archive type: {archive.name}", stage=0, platform=platform
            )
        unpacked = dest.parent / "unpacked"
        try:
            with tarfile.open(archive, "r:*") as tar:
                tar.extractall(unpacked, filter="data")
        except (tarfile.TarError, OSError) as exc:
            raise SnapshotFormatError(
                f"Stage-0 archive could not be unpacked: {exc}", stage=0, platform=platform
            ) from exc

        # Accept either a flat bundle or a single top-level directory.
        root = unpacked
        children = [c for c in unpacked.iterdir()]
        if not (unpacked / "bin").is_dir() and len(children) == 1 and children[0].is_dir():
            root = children[0]
        if not (root / TOOLCHAIN_ENTRYPOINT).is_file():
            raise SnapshotFormatError(
                f"Stage-0 archive has no {TOOLCHAIN_ENTRYPOINT}", stage=0, platform=platform
            )
        root.rename(dest)
        shutil.rmtree(unpacked, ignore_errors=True)

    def _download_with_retries(self, platform: Platform, url: str, dest: Path) -> str:
        """Download ``url`` to ``dest`` and return its SHA-256 hex digest."""
        last_error: Exception | None = None
        for attempt in range(1, self._retry_count + 1):
            self._ctx.record("download_attempt", stage=0, detail=f"{platform} attempt {attempt}")
            try:
                return self._download(url, dest)
            except _RetryableFetchError as exc:
                last_error = exc
                dest.unlink(missing_ok=True)
                if attempt == self._retry_count:
                    break
                delay = min(self._backoff_cap, self._backoff_base * (2 ** (attempt - 1)))
                logger.warning(
                    "Fetching %s failed (attempt %d/%d): %s; retrying in %.1fs",
                    url, attempt, self._retry_count, exc, delay,
                )
                self._sleep(delay)
        raise NetworkError(
            f"Could not fetch {url} after {self._retry_count} attempts: {last_error}",
            stage=0,
            platform=platform,
        )

    def _download(self, url: str, dest: Path) -> str:
        parsed = urlparse(url)
        if parsed.scheme == "file":
            return self._copy_local(Path(unquote(parsed.path)), dest)

        h = hashlib.sha256()
        try:
            with self._http().stream("GET", url) as response:
                if response.status_code >= 500 or response.status_code == 429:
                    raise _RetryableFetchError(f"HTTP {response.status_code}")
                if response.is_error:
                    raise NetworkError(f"Fetching {url} failed with HTTP {response.status_code}", stage=0)
                with open(dest, "wb") as fh:
                    for chunk in response.iter_bytes(_CHUNK):
                        h.update(chunk)
                        fh.write(chunk)
        except httpx.TransportError as exc:
            raise _RetryableFetchError(str(exc) or type(exc).__name__) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NetworkError(f"Fetching {url} failed: {type(exc).__name__}: {exc}", stage=0) from exc
        return h.hexdigest()

    @staticmethod
    def _copy_local(source: Path, dest: Path) -> str:
        h = hashlib.sha256()
        try:
            with open(source, "rb") as src, open(dest, "wb") as out:
                for chunk in iter(lambda: src.read(_CHUNK), b""):
                    h.update(chunk)
                    out.write(chunk)
        except FileNotFoundError as exc:
            raise NetworkError(f"Snapshot file not found: {source}", stage=0) from exc
        except OSError as exc:
            raise _RetryableFetchError(str(exc)) from exc
        return h.hexdigest()

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._timeout,
                follow_redirects=True,
                proxy=self._proxy,
            )
        return self._client
