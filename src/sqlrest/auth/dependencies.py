"""Bearer-token gate for the HTTP and MCP surfaces.

Token issuance lives outside this service. The gate only turns an
``Authorization: Bearer ...`` header into an :class:`Identity`.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Iterable, Protocol

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config import ApiToken
from ..errors import AuthError

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    authenticated: bool
    identity: str = ""


ANONYMOUS = Identity(authenticated=False)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> Identity: ...


class StaticTokenVerifier:
    """Checks bearer tokens against the configured token list."""

    def __init__(self, tokens: Iterable[ApiToken]) -> None:
        self._tokens = [(t.token.encode(), t.identity) for t in tokens]

    def verify(self, token: str) -> Identity:
        candidate = token.encode()
        for expected, identity in self._tokens:
            if hmac.compare_digest(candidate, expected):
                return Identity(authenticated=True, identity=identity)
        return ANONYMOUS


def authenticate(verifier: TokenVerifier, authorization: str | None) -> Identity:
    if not authorization:
        raise AuthError("Missing bearer token")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Missing bearer token")
    identity = verifier.verify(token.strip())
    if not identity.authenticated:
        raise AuthError("Invalid or expired token")
    return identity


async def require_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    if credentials is None:
        raise AuthError("Missing bearer token")
    identity = authenticate(
        request.app.state.token_verifier, f"{credentials.scheme} {credentials.credentials}"
    )
    request.state.identity = identity
    return identity
