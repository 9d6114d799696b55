"""Error kinds raised by services and mapped to HTTP statuses in one place."""

import enum


class ErrorKind(str, enum.Enum):
    bad_request = "bad_request"
    unauthorized = "unauthorized"
    forbidden = "forbidden"
    not_found = "not_found"
    gone = "gone"
    internal = "internal"


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.bad_request: 400,
    ErrorKind.unauthorized: 401,
    ErrorKind.forbidden: 403,
    ErrorKind.not_found: 404,
    ErrorKind.gone: 410,
    ErrorKind.internal: 500,
}


class ServiceError(Exception):
    """A failure of exactly one kind.

    ``message`` is safe to return to the client. Security-sensitive callers
    pass deliberately coarse messages; details belong in the log.
    """

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @classmethod
    def bad_request(cls, message: str) -> "ServiceError":
        return cls(ErrorKind.bad_request, message)

    @classmethod
    def unauthorized(cls, message: str) -> "ServiceError":
        return cls(ErrorKind.unauthorized, message)

    @classmethod
    def forbidden(cls, message: str) -> "ServiceError":
        return cls(ErrorKind.forbidden, message)

    @classmethod
    def not_found(cls, message: str) -> "ServiceError":
        return cls(ErrorKind.not_found, message)

    @classmethod
    def gone(cls, message: str) -> "ServiceError":
        return cls(ErrorKind.gone, message)

    @classmethod
    def internal(cls, message: str = "Something went wrong on the server") -> "ServiceError":
        return cls(ErrorKind.internal, message)

    def __repr__(self) -> str:
        return f"<ServiceError kind={self.kind.value} message={self.message!r}>"
