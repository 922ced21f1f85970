"""
auth/ -- Principal resolution for tenant-rbac (gate step 1).

Identity tokens are issued by an external identity provider. This package
only verifies them and maps the token subject to the provisioned user.

Layer rule: auth/ may import from core/ and rbac/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
