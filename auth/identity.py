"""
auth/identity.py -- Verification of identity tokens from the external provider.

Security design decisions:
  JWT: python-jose. Tokens are signed by the identity provider with the
       shared IDENTITY_SECRET (HS256 by default). Verification returns None on
       any failure -- the route layer turns that into a 401. Issuance is the
       provider's job; nothing here mints tokens.

  Claims: "sub" is the provider's stable subject and must be present. "email"
       is carried through for display only. "exp" is always verified; "aud"
       and "iss" are verified when IDENTITY_AUDIENCE / IDENTITY_ISSUER are set.

  IDENTITY_SECRET: sourced from core.config.get_settings(), which rejects
       short keys and refuses to start without one outside debug mode.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("rbac.auth")

_settings = get_settings()


def decode_identity_token(token: str) -> dict | None:
    """Verify a provider-issued JWT. Returns the claims dict or None on any failure.

    Returning None (rather than raising) keeps the caller simple: any invalid
    token is treated as unauthenticated.
    """
    options = {"verify_aud": _settings.identity_audience is not None}
    try:
        claims = jwt.decode(
            token,
            _settings.identity_secret,
            algorithms=[_settings.identity_algorithm],
            audience=_settings.identity_audience,
            issuer=_settings.identity_issuer,
            options=options,
        )
    except JWTError:
        logger.info("Rejected identity token: verification failed")
        return None
    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject:
        return None
    return claims


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an "Authorization: Bearer <token>" header value."""
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization[7:].strip()
    return token or None
