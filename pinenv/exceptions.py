"""Custom exception hierarchy for pinenv."""

from __future__ import annotations


class PinenvError(Exception):
    """Base error for all custom exceptions."""


class ConfigError(PinenvError):
    """Raised when environment configuration is missing or invalid."""


class ValidationError(PinenvError):
    """Raised when user input is invalid."""


class ParseError(PinenvError):
    """Raised when a repository reference has an unrecognized format."""


class NotFoundError(PinenvError):
    """Raised when an environment or its lockspec files are missing."""


class LockSpecError(PinenvError):
    """Raised when a lockspec cannot be read, stamped, or placed."""


class GitCommandError(PinenvError):
    """Raised when a git invocation fails."""

    def __init__(self, command: list[str], returncode: int, stderr: str | None = None):
        message = "Git command failed"
        if command:
            message = f"Git command failed: {' '.join(command)}"
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ""
        if self.stderr.strip():
            message = f"{message}\n{self.stderr.strip()}"
        super().__init__(message)


class InstallerError(PinenvError):
    """Raised when the installer cannot be spawned or exits non-zero."""

    def __init__(self, command: list[str], returncode: int | None, reason: str | None = None):
        if returncode is None:
            message = f"Unable to run {command[0]}: {reason or 'spawn failed'}"
        else:
            message = f"{' '.join(command)} exited with status {returncode}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode


class BackendError(PinenvError):
    """Raised when the hosting backend rejects a request or returns garbage."""

    def __init__(self, message: str, *, status: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status = status
        self.body = body or ""


class AuthError(PinenvError):
    """Raised for missing credentials and terminal device-flow states."""


class ProvisionError(PinenvError):
    """Raised when a provisioning stage fails after rollback has run."""

    def __init__(self, stage: str, message: str, rollback_failures: list | None = None):
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.rollback_failures = list(rollback_failures or [])


__all__ = [
    "PinenvError",
    "ConfigError",
    "ValidationError",
    "ParseError",
    "NotFoundError",
    "LockSpecError",
    "GitCommandError",
    "InstallerError",
    "BackendError",
    "AuthError",
    "ProvisionError",
]
