from enum import Enum


class ErrorKind(Enum):
    """Failure categories the API boundary knows how to translate."""

    VALIDATION = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    INTERNAL = 500

    @property
    def status_code(self) -> int:
        return self.value


class LedgerError(Exception):
    """Raised by domain code; turned into a `{success: false}` response in main.py."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"LedgerError({self.kind.name}, {self.message!r})"


def validation_error(message: str) -> LedgerError:
    return LedgerError(ErrorKind.VALIDATION, message)


def not_found(what: str) -> LedgerError:
    return LedgerError(ErrorKind.NOT_FOUND, f"{what} not found")


def forbidden(message: str) -> LedgerError:
    return LedgerError(ErrorKind.FORBIDDEN, message)


def conflict(message: str) -> LedgerError:
    return LedgerError(ErrorKind.CONFLICT, message)
