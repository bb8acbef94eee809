"""Custom exception hierarchy for git-smart-status."""


class SmartStatusError(Exception):
    """Base error for all custom exceptions."""


class ConfigurationError(SmartStatusError):
    """Raised when the root directory or other settings are unusable."""


class ValidationError(SmartStatusError):
    """Raised when a command's preconditions are not met."""


class RepositoryBusyError(ValidationError):
    """Raised when a command is requested while another one is running."""

    def __init__(self, label: str, operation: str):
        super().__init__(f"{label} is busy, cannot {operation} right now.")
        self.label = label
        self.operation = operation


class GitCommandError(SmartStatusError):
    """Raised when a git invocation fails."""

    def __init__(self, command: list[str], returncode: int, stderr: str | None = None):
        message = "Git command failed"
        if command:
            message = f"Git command failed: {' '.join(command)}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr or ""


class UserAbort(SmartStatusError):
    """Raised when the user cancels an interactive flow."""
