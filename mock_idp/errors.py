"""
Structured OAuth errors in the identity provider's diagnostic envelope:
error, error_description (with trace id, correlation id, timestamp), error_codes,
and the same diagnostics at the top level.
"""
from datetime import datetime, timezone

from fastapi import Request
from fastapi.responses import JSONResponse

from mock_idp.ids import generate_id

# Numeric sub-codes (AADSTS style)
CODE_MISSING_PARAMETER = 900144
CODE_UNSUPPORTED_RESPONSE_TYPE = 700054
CODE_UNSUPPORTED_GRANT_TYPE = 70003
CODE_INVALID_GRANT = 70008
CODE_PKCE_MISMATCH = 501481
CODE_INVALID_CLIENT = 7000215
CODE_INVALID_TOKEN = 50132


class OAuthError(Exception):
    """Raised by handlers; rendered by oauth_error_handler."""

    def __init__(
        self,
        status_code: int,
        error: str,
        description: str,
        error_code: int,
        headers: dict[str, str] | None = None,
    ):
        super().__init__(f"{error}: {description}")
        self.status_code = status_code
        self.error = error
        self.description = description
        self.error_code = error_code
        self.headers = headers

    def to_body(self, trace_id: str | None = None, correlation_id: str | None = None, now: datetime | None = None) -> dict:
        trace_id = trace_id or generate_id()
        correlation_id = correlation_id or generate_id()
        timestamp = (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%SZ")
        return {
            "error": self.error,
            "error_description": (
                f"AADSTS{self.error_code}: {self.description}\r\n"
                f"Trace ID: {trace_id}\r\n"
                f"Correlation ID: {correlation_id}\r\n"
                f"Timestamp: {timestamp}"
            ),
            "error_codes": [self.error_code],
            "timestamp": timestamp,
            "trace_id": trace_id,
            "correlation_id": correlation_id,
        }


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    # Honour a caller-supplied correlation id like the real provider does
    correlation_id = request.headers.get("client-request-id")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body(correlation_id=correlation_id),
        headers=exc.headers,
    )


def invalid_request(description: str) -> OAuthError:
    return OAuthError(400, "invalid_request", description, CODE_MISSING_PARAMETER)


def unsupported_response_type(response_type: str) -> OAuthError:
    return OAuthError(
        400,
        "unsupported_response_type",
        f"The provided value for the input parameter 'response_type' is not allowed: '{response_type}'.",
        CODE_UNSUPPORTED_RESPONSE_TYPE,
    )


def unsupported_grant_type(grant_type: str | None) -> OAuthError:
    return OAuthError(
        400,
        "unsupported_grant_type",
        f"The provided value for the input parameter 'grant_type' is not valid: '{grant_type or ''}'.",
        CODE_UNSUPPORTED_GRANT_TYPE,
    )


def invalid_grant(description: str, error_code: int = CODE_INVALID_GRANT) -> OAuthError:
    return OAuthError(400, "invalid_grant", description, error_code)


def invalid_client(description: str) -> OAuthError:
    return OAuthError(401, "invalid_client", description, CODE_INVALID_CLIENT)


def invalid_token(description: str) -> OAuthError:
    return OAuthError(
        401,
        "invalid_token",
        description,
        CODE_INVALID_TOKEN,
        headers={"WWW-Authenticate": 'Bearer error="invalid_token"'},
    )
