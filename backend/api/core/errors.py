"""Error kinds raised by the auth services and their HTTP mapping.

Services never build HTTP responses. They raise ``AuthError`` carrying an
``ErrorKind``; ``register_error_handlers`` installs the single boundary that
turns a kind into a status code and a JSON body.
"""

import logging
from enum import StrEnum

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    EXTERNAL_PROVIDER_ERROR = "external_provider_error"
    INTERNAL_INCONSISTENCY = "internal_inconsistency"
    ID_GENERATION_EXHAUSTED = "id_generation_exhausted"


STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.EXTERNAL_PROVIDER_ERROR: 502,
    ErrorKind.INTERNAL_INCONSISTENCY: 500,
    ErrorKind.ID_GENERATION_EXHAUSTED: 500,
}

# Kinds whose message may carry internal details; clients get a generic text
_GENERIC_DETAILS: dict[ErrorKind, str] = {
    ErrorKind.EXTERNAL_PROVIDER_ERROR: "Failed to communicate with the login provider.",
    ErrorKind.INTERNAL_INCONSISTENCY: "Internal server error.",
    ErrorKind.ID_GENERATION_EXHAUSTED: "Internal server error.",
}


class AuthError(Exception):
    """Failure of an auth operation, classified by ``kind``."""

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable payload safe to show to clients."""
        return {
            "error": self.kind.value,
            "detail": _GENERIC_DETAILS.get(self.kind, self.message),
        }


class IdGenerationExhausted(AuthError):
    """No free id was found within the retry budget."""

    def __init__(self, attempts: int) -> None:
        super().__init__(
            ErrorKind.ID_GENERATION_EXHAUSTED,
            f"Failed to generate a unique id after {attempts} attempts.",
        )
        self.attempts = attempts


class ExternalProviderError(AuthError):
    """Provider or avatar host failed, timed out or answered non-2xx."""

    def __init__(self, message: str) -> None:
        super().__init__(ErrorKind.EXTERNAL_PROVIDER_ERROR, message)


async def _auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    if exc.kind in _GENERIC_DETAILS:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.kind}")
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


def register_error_handlers(app: FastAPI) -> None:
    """Map ``AuthError`` kinds to HTTP responses for the whole app."""
    app.add_exception_handler(AuthError, _auth_error_handler)  # type: ignore[arg-type]
