"""
Error taxonomy shared by every service. Each error knows the HTTP status
the web layer answers with; services never raise HTTPException themselves.
"""


class TaskpoolError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidArgument(TaskpoolError):
    status_code = 400


class WrongContract(InvalidArgument):
    pass


class NotFound(TaskpoolError):
    status_code = 404


class ReferencedEntityMissing(NotFound):
    pass


class NoSuchContract(NotFound):
    pass


class AlreadyExists(TaskpoolError):
    status_code = 409


class InvalidState(TaskpoolError):
    status_code = 409


class AlreadyPaid(InvalidState):
    pass


class ScopeMismatch(TaskpoolError):
    status_code = 400


class Transient(TaskpoolError):
    """Retryable failure: timeout, 5xx, serialisation conflict."""
    status_code = 503


class Permanent(TaskpoolError):
    """Authoritative negative answer from upstream (404, 401)."""
    status_code = 502
