class EngineError(Exception):
    """Base class for errors raised by the feed and analytics services."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(EngineError):
    status_code = 400


class NotFoundError(EngineError):
    status_code = 404


class ConflictError(EngineError):
    status_code = 409


class PermissionDeniedError(EngineError):
    status_code = 403


class DuplicateKeyError(ConflictError):
    """A unique key was inserted concurrently by another writer."""


class PersistenceError(EngineError):
    pass


class CounterUpdateError(PersistenceError):
    pass


class RepostCreationError(PersistenceError):
    pass
