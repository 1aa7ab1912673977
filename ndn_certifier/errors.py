"""Error taxonomy for the certification agent."""
from __future__ import annotations

from typing import Optional


class CertifierError(RuntimeError):
    """Base class for every error raised by the agent."""


class TransientError(CertifierError):
    """Branch-local failure that only affects the current cycle."""


class SnapshotError(TransientError):
    """Raised when a snapshot source could not produce a result."""

    kind = "failure"

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.detail = detail

    def as_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"kind": self.kind, "message": str(self)}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class CommandFailed(SnapshotError):
    """An external command exited with a generic failure."""


class IdentityNotFound(SnapshotError):
    """The requested identity or certificate does not exist."""

    kind = "not_found"


class CanonizeFailed(SnapshotError):
    """A FaceUri could not be canonized by the forwarder."""

    kind = "canonize"


class AmbiguousMatch(SnapshotError):
    """The request matched more than one entry."""

    kind = "ambiguous"


class NackReceived(SnapshotError):
    """The forwarder answered with a negative acknowledgement or had no route."""

    kind = "nack"


class MalformedResponse(SnapshotError):
    """The command output could not be parsed into a snapshot."""

    kind = "malformed"


class SnapshotTimeout(TransientError):
    """Raised when an awaited external call exceeds its deadline."""

    def __init__(self, source: str, timeout: float) -> None:
        super().__init__(f"{source} timed out after {timeout:.3f}s")
        self.source = source
        self.timeout = timeout


class ContractError(CertifierError):
    """A task received a dependency of the wrong type.

    This never happens with correct wiring and is reported separately from
    transient failures.
    """


class BranchFailed(CertifierError):
    """Raised by a task whose upstream dependency failed during the cycle."""

    def __init__(self, task: str, origin: str, cause: BaseException) -> None:
        super().__init__(f"{task} skipped: {origin} failed ({cause})")
        self.task = task
        self.origin = origin
        self.cause = cause


class LogOrderError(CertifierError, ValueError):
    """Raised when an insert would duplicate or reorder a log entry."""


_EXIT_CODES: dict[int, type[SnapshotError]] = {
    1: CommandFailed,
    3: IdentityNotFound,
    4: CanonizeFailed,
    5: AmbiguousMatch,
    6: NackReceived,
}


def error_for_exit_code(code: Optional[int], command: str, stderr: str) -> SnapshotError:
    """Map a non-zero exit status to the matching :class:`SnapshotError`."""

    error_cls = _EXIT_CODES.get(code if code is not None else -1, CommandFailed)
    detail = stderr.strip() or None
    return error_cls(f"{command} exited with status {code}", detail=detail)


__all__ = [
    "AmbiguousMatch",
    "BranchFailed",
    "CanonizeFailed",
    "CertifierError",
    "CommandFailed",
    "ContractError",
    "IdentityNotFound",
    "LogOrderError",
    "MalformedResponse",
    "NackReceived",
    "SnapshotError",
    "SnapshotTimeout",
    "TransientError",
    "error_for_exit_code",
]
