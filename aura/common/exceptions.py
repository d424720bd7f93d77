"""
Custom Exception Classes for the Aura Telemetry Client

Hierarchical exception structure shared by the store, sync and session layers.
"""

from pathlib import Path


class AuraError(Exception):
    """Base exception for all Aura client errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class ConfigError(AuraError):
    """Configuration-related errors (never retried)"""

    def __init__(self, message: str):
        super().__init__(f"Config Error: {message}", recoverable=False)


class NotConfiguredError(ConfigError):
    """Session used before setup()"""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"{operation}() called before setup()")


class StorageError(AuraError):
    """Local disk write/read failures"""

    def __init__(self, message: str, path: Path | None = None):
        self.path = path
        super().__init__(f"Storage Error: {message}", recoverable=True)


class RemoteError(AuraError):
    """Remote document store errors (HTTP status, timeout, connectivity)"""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(f"Remote Error: {message}", recoverable=True)


class SyncTimeoutError(RemoteError):
    """A queue file did not finish uploading within its time budget"""

    def __init__(self, path: Path, timeout_s: float):
        self.path = path
        self.timeout_s = timeout_s
        super().__init__(f"upload of {path.name} exceeded {timeout_s:g}s")


class ParseError(AuraError):
    """A queued line could not be decoded into a LogEntry"""

    def __init__(self, message: str, path: Path | None = None, line_number: int | None = None):
        self.path = path
        self.line_number = line_number
        location = f"{path.name}:{line_number}" if path is not None else "<unknown>"
        super().__init__(f"Parse Error at {location}: {message}", recoverable=False)
