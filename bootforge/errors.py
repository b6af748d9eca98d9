"""Error taxonomy for bootstrap runs.

Every error carries the exit code the CLI reports and the (stage, platform,
fingerprint) context it was raised in, so a failure deep inside a multi-target
run can always be traced back to the step that produced it.
"""

from __future__ import annotations

from typing import Any

EXIT_OK = 0
EXIT_COMPILE = 1
EXIT_NETWORK = 2
EXIT_INTEGRITY = 3
EXIT_CONFIG = 4

# Most severe first; used when a run collects several failures.
EXIT_SEVERITY: tuple[int, ...] = (EXIT_INTEGRITY, EXIT_CONFIG, EXIT_NETWORK, EXIT_COMPILE)


class BootstrapError(RuntimeError):
    """Base class for every error surfaced by a bootstrap run."""

    exit_code: int = EXIT_COMPILE

    def __init__(
        self,
        message: str,
        *,
        stage: int | None = None,
        platform: Any = None,
        fingerprint: str | None = None,
        step_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.platform = str(platform) if platform is not None else None
        self.fingerprint = fingerprint
        self.step_id = step_id

    @property
    def context(self) -> dict[str, Any]:
        ctx: dict[str, Any] = {}
        if self.step_id is not None:
            ctx["step"] = self.step_id
        if self.stage is not None:
            ctx["stage"] = self.stage
        if self.platform is not None:
            ctx["platform"] = self.platform
        if self.fingerprint is not None:
            ctx["fingerprint"] = self.fingerprint[:16]
        return ctx

    def with_context(self, **context: Any) -> BootstrapError:
        """Fill in context fields that are still unset and return self."""
        for key in ("stage", "fingerprint", "step_id"):
            if getattr(self, key) is None and context.get(key) is not None:
                setattr(self, key, context[key])
        if self.platform is None and context.get("platform") is not None:
            self.platform = str(context["platform"])
        return self

    def __str__(self) -> str:
        ctx = self.context
        if not ctx:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in ctx.items())
        return f"{self.message} [{details}]"


class InvalidConfigurationError(BootstrapError):
    """Unknown config keys, bad values, malformed triples or manifests."""

    exit_code = EXIT_CONFIG


class PlatformUnsupportedError(BootstrapError):
    """The snapshot manifest has no entry for a requested host platform."""

    exit_code = EXIT_CONFIG


class SnapshotFormatError(BootstrapError):
    """A manifest entry declares a format version this tool does not read."""

    exit_code = EXIT_CONFIG


class NetworkError(BootstrapError):
    """Fetching a snapshot failed after all retry attempts."""

    exit_code = EXIT_NETWORK


class ChecksumMismatchError(BootstrapError):
    """A downloaded snapshot does not match its manifest checksum."""

    exit_code = EXIT_INTEGRITY


class CacheCorruptionError(BootstrapError):
    """A cache entry failed its integrity check and could not be replaced."""

    exit_code = EXIT_INTEGRITY


class FixedPointMismatchError(BootstrapError):
    """The final stage rebuilt by itself is not equivalent to its parent build."""

    exit_code = EXIT_INTEGRITY


class CompileError(BootstrapError):
    """The toolchain rejected the sources (exit status 1)."""

    exit_code = EXIT_COMPILE

    def __init__(self, message: str, *, diagnostics: str = "", **context: Any) -> None:
        super().__init__(message, **context)
        self.diagnostics = diagnostics


class ProcessError(BootstrapError):
    """The toolchain crashed, was killed, or produced an unusable bundle."""

    exit_code = EXIT_COMPILE

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        signal: int | None = None,
        diagnostics: str = "",
        **context: Any,
    ) -> None:
        super().__init__(message, **context)
        self.returncode = returncode
        self.signal = signal
        self.diagnostics = diagnostics


def most_severe_exit_code(errors: list[BootstrapError]) -> int:
    """Pick the exit code for a run that collected ``errors``."""
    codes = {err.exit_code for err in errors}
    for code in EXIT_SEVERITY:
        if code in codes:
            return code
    return EXIT_OK
