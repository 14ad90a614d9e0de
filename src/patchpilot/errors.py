"""Exception hierarchy for patchpilot."""


class PatchpilotError(Exception):
    """Base class for all patchpilot errors."""


class DiffTooLargeError(PatchpilotError, ValueError):
    """Raised when a diff exceeds the configured input cap before parsing."""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Diff is {size} bytes, exceeding the {limit} byte limit")


class InvalidPatternError(PatchpilotError, ValueError):
    """Raised for malformed path filter patterns."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid path pattern {pattern!r}: {reason}")


class ProviderError(PatchpilotError):
    """An AI review provider call failed."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class ProviderResponseError(ProviderError):
    """The provider answered, but not with a usable review."""


class UnsupportedProviderError(PatchpilotError, ValueError):
    """No provider implementation exists for the configured name."""


class DataStoreError(PatchpilotError):
    """The data store rejected or failed a call."""


class HostError(PatchpilotError):
    """The version control host rejected or failed a call."""


class JobPayloadError(PatchpilotError, ValueError):
    """A queued job payload could not be decoded into a ReviewJob."""


class JobTimeoutError(PatchpilotError):
    """A job ran longer than the worker pool's job timeout."""
