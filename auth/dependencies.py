"""
auth/dependencies.py -- FastAPI Depends() helpers for principal resolution.

Gate step 1: every protected route depends on get_current_principal(), which

  1. requires an "Authorization: Bearer <token>" header,
  2. verifies the token (auth/identity.py),
  3. maps the token subject to the provisioned user via users.auth_id.

Each failing step raises HTTP 401 with a code that says which step failed.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.identity import bearer_token, decode_identity_token
from auth.models import Principal
from rbac.store import RBACStore


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(status_code=401, detail={"code": code, "message": message})


def get_current_principal(request: Request) -> Principal:
    """Require an authenticated, provisioned principal.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise _unauthorized("unauthorized", "Authentication required.")
    claims = decode_identity_token(token)
    if claims is None:
        raise _unauthorized("unauthorized", "Invalid or expired token.")
    store: RBACStore = request.app.state.store
    user = store.get_user_by_auth_id(claims["sub"])
    if user is None:
        raise _unauthorized("user_not_found", "User not found.")
    return Principal(auth_id=user.auth_id, user_id=int(user.id), email=user.email)
