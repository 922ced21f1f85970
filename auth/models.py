"""
auth/models.py -- Domain dataclass for an authenticated principal.

Pattern: Data class (pure data container, zero logic), like rbac/models.py.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Principal:
    """The acting identity of a request after step 1 of the gate.

    auth_id is the identity provider's subject claim; user_id is the internal
    numeric id every authorization check is keyed on. The two are linked 1:1
    at provisioning time (users.auth_id).
    """

    auth_id: str
    user_id: int
    email: str = ""
