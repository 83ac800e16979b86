from __future__ import annotations


class QuestlineError(Exception):
    """Base for domain errors raised by the engine and mapped to HTTP by main."""

    status_code = 500

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code)
        self.code = str(code)
        self.message = str(message or code)


class ValidationError(QuestlineError):
    status_code = 400


class NotFoundError(QuestlineError):
    status_code = 404


class ConflictError(QuestlineError):
    status_code = 409


class StoreBusyError(QuestlineError):
    """The store stayed locked past its busy timeout; the caller may retry."""

    status_code = 503
