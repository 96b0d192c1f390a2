"""
Data Models Package.

Re-exports all Pydantic models:
    from identity_link.models import User, GitHubIdentity
    from identity_link.models import ProviderProfile, RequestContext, LinkResult
"""

from identity_link.models.link_models import AvatarSync, LinkResult
from identity_link.models.profile import (
    ProviderEmail,
    ProviderPhoto,
    ProviderProfile,
    RequestContext,
)
from identity_link.models.user import GitHubIdentity, User

__all__ = [
    "AvatarSync",
    "GitHubIdentity",
    "LinkResult",
    "ProviderEmail",
    "ProviderPhoto",
    "ProviderProfile",
    "RequestContext",
    "User",
]
