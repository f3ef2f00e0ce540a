from typing import Optional


class UploaderError(Exception):
    """Base error carrying the HTTP status and the JSON error body it maps to."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ClientInputError(UploaderError):
    status_code = 400


class AuthorizationError(UploaderError):
    status_code = 401

    def __init__(self, message: str):
        # no details: decrypt diagnostics must never reach the caller
        super().__init__(message)


class DependencyError(UploaderError):
    status_code = 500
