"""
auth/profiles.py -- Profile collaborator: sanitized identity views.

The orchestrator's me() delegates here. Profile editing belongs to the
content platform, not to the session core, so this module only reads.
"""

from __future__ import annotations

from auth.errors import NotFound
from auth.models import ProfileView
from auth.store import CredentialStore


class ProfileService:
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def get_sanitized_profile(self, identity_id: str) -> ProfileView:
        """Return the identity's profile without credential material.

        Raises NotFound if the identity has been deleted since its token was issued.
        """
        identity = self._store.find_by_id(identity_id)
        if identity is None:
            raise NotFound("User not found.")
        return ProfileView(
            id=identity.id or "",
            name=identity.name,
            email=identity.email,
            is_active=identity.is_active,
            role_code=identity.role.code,
            role_name=identity.role.name,
            created_at=identity.created_at,
            updated_at=identity.updated_at,
        )
