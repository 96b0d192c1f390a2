"""Avatar reconciliation between the stored user and the provider profile."""

from __future__ import annotations

from typing import Optional

from identity_link.models.link_models import AvatarSync


def compute_avatar_sync(stored_url: Optional[str], provider_url: Optional[str]) -> AvatarSync:
    """Compare avatars by exact string equality.

    No normalization is applied: a trailing slash or a different query
    string is a change.  A provider profile without a photo is not.
    """
    if provider_url is None or provider_url == stored_url:
        return AvatarSync(needs_update=False, image_url=stored_url)
    return AvatarSync(needs_update=True, image_url=provider_url)
