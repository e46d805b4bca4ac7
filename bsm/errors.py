"""Deterministic server-manager exception hierarchy."""


class BsmError(Exception):
    """Base error type carrying a stable taxonomy code."""

    error_code = "BSM_ERROR"

    def __init__(self, message: str, *, error_code: str | None = None):
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class AlreadyRunningError(BsmError):
    """A live server process is already recorded in the handle file."""

    error_code = "SERVER_ALREADY_RUNNING"

    def __init__(self, pid: int):
        super().__init__(f"server is already running with PID {pid}")
        self.pid = pid


class NotRunningError(BsmError):
    """No live server process is recorded."""

    error_code = "SERVER_NOT_RUNNING"


class NotFoundError(BsmError):
    """A required file or directory does not exist."""

    error_code = "NOT_FOUND"


class ExecutableNotFoundError(NotFoundError):
    error_code = "SERVER_EXECUTABLE_NOT_FOUND"


class WorldNotFoundError(NotFoundError):
    error_code = "WORLD_NOT_FOUND"

    def __init__(self, message: str, *, world_name: str):
        super().__init__(message)
        self.world_name = world_name


class PermissionDeniedError(BsmError):
    error_code = "PERMISSION_DENIED"


class SignalFailedError(BsmError):
    """A termination signal could not be delivered."""

    error_code = "SIGNAL_FAILED"

    def __init__(self, message: str, *, pid: int):
        super().__init__(message)
        self.pid = pid


class StopTimeoutError(BsmError):
    """Graceful shutdown ceiling reached; triggers a forced kill."""

    error_code = "STOP_TIMEOUT"


class ArchiveError(BsmError):
    """Archive could not be written or read."""

    error_code = "ARCHIVE_ERROR"


class NoBackupsError(BsmError):
    error_code = "NO_BACKUPS"


class InvalidSelectionError(BsmError):
    error_code = "INVALID_SELECTION"


class CancelledError(BsmError):
    """Operator declined to continue."""

    error_code = "CANCELLED"


class ConfigError(BsmError):
    error_code = "CONFIG_INVALID"


class DownloadError(BsmError):
    error_code = "DOWNLOAD_FAILED"
