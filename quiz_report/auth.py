"""
Bearer-token verification and teacher authorisation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Protocol, Sequence

from jose import ExpiredSignatureError, JWTError, jwt

from .errors import AuthError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Verified caller identity."""

    email: str
    claims: Dict[str, Any] = field(default_factory=dict, compare=False)


class IdentityVerifier(Protocol):
    def verify(self, token: str) -> Principal: ...


class JwtIdentityVerifier:
    """
    Verify signed JWT bearer tokens with python-jose.

    The token must carry an ``email`` claim. Audience and issuer are checked
    only when configured.
    """

    def __init__(
        self,
        key: str,
        *,
        algorithms: Sequence[str] = ("HS256",),
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ) -> None:
        self.key = key
        self.algorithms = list(algorithms)
        self.audience = audience
        self.issuer = issuer

    def verify(self, token: str) -> Principal:
        if not token:
            raise AuthError("Missing authentication token.")
        if not self.key:
            raise AuthError("Token verification is not configured.")
        try:
            claims = jwt.decode(
                token,
                self.key,
                algorithms=self.algorithms,
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except ExpiredSignatureError as exc:
            raise AuthError("Authentication token has expired.") from exc
        except JWTError as exc:
            raise AuthError("Invalid authentication token.") from exc

        email = claims.get("email")
        if not isinstance(email, str) or not email.strip():
            raise AuthError("Authentication token has no email claim.")
        return Principal(email=email.strip(), claims=claims)


class Authorizer:
    """
    Allow-list check applied to verified principals.

    A principal is authorised when its email is on ``allowed_emails``
    (case-insensitive) and, if ``allowed_domain`` is set, belongs to that
    domain. An empty allow-list authorises nobody.
    """

    def __init__(self, allowed_emails: Iterable[str], allowed_domain: Optional[str] = None) -> None:
        self.allowed_emails = frozenset(email.strip().casefold() for email in allowed_emails if email.strip())
        self.allowed_domain = (allowed_domain or "").strip().lstrip("@").casefold() or None

    def is_authorized(self, principal: Principal) -> bool:
        email = principal.email.strip().casefold()
        if self.allowed_domain and not email.endswith("@" + self.allowed_domain):
            return False
        return email in self.allowed_emails

    def require(self, principal: Principal) -> Principal:
        if not self.is_authorized(principal):
            logger.warning("Rejected request from unauthorised account %s", principal.email)
            raise AuthError("Account is not authorised to access reports.", status_code=403)
        return principal


def authenticate(
    authorization: Optional[str],
    verifier: IdentityVerifier,
    authorizer: Authorizer,
) -> Principal:
    """Resolve an ``Authorization: Bearer`` header value into an authorised principal."""
    if not authorization:
        raise AuthError("Missing authentication token.")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Authorization header must use the Bearer scheme.")
    return authorizer.require(verifier.verify(token.strip()))
