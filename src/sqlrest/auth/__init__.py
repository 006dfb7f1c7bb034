"""Authentication: the API bearer gate and the warehouse OAuth token."""

from .dependencies import Identity, StaticTokenVerifier, TokenVerifier, authenticate, require_identity
from .oauth import OAuthTokenProvider

__all__ = [
    "Identity",
    "OAuthTokenProvider",
    "StaticTokenVerifier",
    "TokenVerifier",
    "authenticate",
    "require_identity",
]
