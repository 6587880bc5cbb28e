"""Workspace, process and protocol exception hierarchy."""


class CodeCraftError(Exception):
    """Base error carrying stable taxonomy class/code fields."""

    status_code = 500

    def __init__(self, message: str, *, error_class: str, error_code: str):
        super().__init__(message)
        self.error_class = error_class
        self.error_code = error_code

    def to_payload(self) -> dict[str, str]:
        return {"error": str(self), "error_code": self.error_code}


class PathEscapeError(CodeCraftError):
    """Resolved path falls outside the workspace root."""

    status_code = 403

    def __init__(self, message: str = "Access denied: Path is outside workspace"):
        super().__init__(message, error_class="path_escape", error_code="PATH_OUTSIDE_WORKSPACE")


class NotFoundError(CodeCraftError):
    """Requested file or directory does not exist."""

    status_code = 404

    def __init__(self, message: str = "File not found"):
        super().__init__(message, error_class="not_found", error_code="PATH_NOT_FOUND")


class InvalidTargetError(CodeCraftError):
    """Path exists but is the wrong kind for the operation."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, error_class="invalid_target", error_code="PATH_WRONG_KIND")


class BackendError(CodeCraftError):
    """Storage backend I/O failure."""

    def __init__(self, message: str):
        super().__init__(message, error_class="backend", error_code="STORAGE_IO_FAILED")


class SpawnFailureError(CodeCraftError):
    """Shell process could not be launched."""

    def __init__(self, message: str):
        super().__init__(message, error_class="spawn_failure", error_code="PROCESS_SPAWN_FAILED")


class TerminationFailure(CodeCraftError):
    """Signal delivery to a process failed. Logged, never surfaced."""

    def __init__(self, message: str):
        super().__init__(message, error_class="termination", error_code="PROCESS_TERMINATE_FAILED")


class ProtocolError(CodeCraftError):
    """Inbound socket frame is not valid JSON or has the wrong shape."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, error_class="protocol", error_code="MESSAGE_INVALID")


class CodeAssistError(CodeCraftError):
    """Code-generation provider call failed or returned an unusable payload."""

    def __init__(self, message: str):
        super().__init__(message, error_class="code_assist", error_code="CODE_ASSIST_FAILED")
