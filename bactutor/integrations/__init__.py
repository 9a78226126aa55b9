"""External collaborators: identity, profile store, document extraction, local cache."""

from .identity import AuthResult, AuthSession, SupabaseAuthClient
from .local_cache import LocalPreferenceCache
from .pdf_extractor import extract_text
from .profile_store import Profile, SqlProfileStore

__all__ = [
    "AuthResult",
    "AuthSession",
    "LocalPreferenceCache",
    "Profile",
    "SqlProfileStore",
    "SupabaseAuthClient",
    "extract_text",
]
