from __future__ import annotations

from typing import Mapping, Optional

from sessionkit.service.errors import MalformedHeaderError, MissingCredentialError

BEARER_SCHEME = "Bearer"


def extract_bearer(header_value: Optional[str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header value.

    The scheme match is exact and the separator is a single space. The token
    itself is returned verbatim; judging its shape is the validator's job.
    """
    if not header_value:
        raise MissingCredentialError("no authorization header included in request")
    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_SCHEME:
        raise MalformedHeaderError("malformed authorization header")
    return parts[1]


def bearer_from_headers(headers: Mapping[str, str]) -> str:
    """Read ``Authorization`` from request headers and extract the bearer token.

    Lookup is case-insensitive so plain dicts behave like HTTP header maps.
    """
    value = headers.get("Authorization")
    if value is None:
        value = next(
            (v for k, v in headers.items() if k.lower() == "authorization"), None
        )
    return extract_bearer(value)
