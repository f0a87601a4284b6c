"""Custom exceptions for genbot."""


class GenBotError(Exception):
    """Base exception for genbot."""
    pass


class NotFoundError(GenBotError):
    """Raised when a session or a job does not exist."""
    pass


class SessionNotFoundError(NotFoundError):
    """Raised when a chat session has not been started."""

    def __init__(self, session_key):
        self.session_key = session_key
        super().__init__(f"Session '{session_key}' does not exist")


class JobNotFoundError(NotFoundError):
    """Raised when a job id is not registered for a session and kind."""

    def __init__(self, kind, job_id: int):
        self.kind = kind
        self.job_id = job_id
        label = kind.label if kind is not None else "Job"
        super().__init__(f"{label} job '{job_id}' does not exist")


class AlreadyExistsError(GenBotError):
    """Raised on duplicate creation."""
    pass


class SessionAlreadyExistsError(AlreadyExistsError):
    """Raised when starting a session that is already active."""

    def __init__(self, session_key):
        self.session_key = session_key
        super().__init__(f"Session '{session_key}' already exists")


class JobAlreadyUsedError(AlreadyExistsError):
    """Raised when a job id is already registered for a session and kind."""

    def __init__(self, kind, job_id: int):
        self.kind = kind
        self.job_id = job_id
        super().__init__(f"{kind.label} job '{job_id}' is already used")


class OverloadedError(GenBotError):
    """Raised when the task queue or a per-session job ceiling is full."""
    pass


class JobCanceledError(GenBotError):
    """Raised when a job was cancelled by its session."""
    pass


class BackendError(GenBotError):
    """Raised when a generation backend fails."""
    pass


class QuotaExhaustedError(BackendError):
    """Raised when a backend credential has used up its quota."""
    pass


class BackendUnavailableError(BackendError):
    """Raised when a backend answers with an unexpected status."""

    def __init__(self, message: str, status: int = None):
        self.status = status
        super().__init__(message)


class NoCredentialsError(BackendError):
    """Raised when a backend has no credentials configured."""
    pass


class InvalidPromptError(BackendError):
    """Raised when a prompt cannot be turned into a backend request."""
    pass


class UnsupportedOperationError(BackendError):
    """Raised when a backend is asked for an output it cannot produce."""
    pass
