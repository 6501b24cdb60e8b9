from __future__ import annotations


class QuotaProbeError(Exception):
    """Base class for every failure raised while acquiring usage data."""

    retryable: bool = True


class RunError(QuotaProbeError):
    pass


class BinaryNotFound(RunError):
    def __init__(self, name: str) -> None:
        super().__init__(f"CLI '{name}' not found. Please install it and ensure it's on PATH.")
        self.name = name


class LaunchFailed(RunError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Failed to launch process: {reason}")
        self.reason = reason


class TimedOut(RunError):
    def __init__(self, message: str = "Command timed out.") -> None:
        super().__init__(message)


class ProbeError(QuotaProbeError):
    pass


class CLINotFound(ProbeError):
    def __init__(self, name: str) -> None:
        super().__init__(f"{name} not found")
        self.name = name


class AuthenticationRequired(ProbeError):
    retryable = False

    def __init__(self, message: str = "authentication required") -> None:
        super().__init__(message)


class ExecutionFailed(ProbeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ParseFailed(ProbeError):
    retryable = False
