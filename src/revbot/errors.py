"""Error taxonomy shared by the scheduler, the marker protocol and the bots."""

from __future__ import annotations


class RevbotError(RuntimeError):
    """Base error raised by revbot components."""


class TransientHostError(RevbotError):
    """Raised when the hosting platform fails in a way that may succeed later."""


class ProtocolDecodeError(RevbotError):
    """Raised when marker text is present but cannot be decoded.

    Callers scanning comment history treat this as the absence of state: the
    malformed marker is logged and skipped rather than failing the run.
    """


class LocalIOError(RevbotError):
    """Raised when the scratch filesystem cannot be used."""


class InvariantViolation(RevbotError):
    """Raised when host state contradicts an assumption of the work item."""


class SchedulerClosedError(RevbotError):
    """Raised when submitting work to a runner that is shutting down."""


class ConfigurationError(RevbotError):
    """Raised when the runner configuration is missing or inconsistent."""


RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (TransientHostError, LocalIOError)


__all__ = [
    "ConfigurationError",
    "InvariantViolation",
    "LocalIOError",
    "ProtocolDecodeError",
    "RETRYABLE_ERRORS",
    "RevbotError",
    "SchedulerClosedError",
    "TransientHostError",
]
