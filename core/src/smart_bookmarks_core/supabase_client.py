from __future__ import annotations

from supabase import AsyncClient, AsyncClientOptions, acreate_client

from smart_bookmarks_core.config import SupabaseConfig
from smart_bookmarks_core.errors import ConfigurationError


async def build_supabase_client(config: SupabaseConfig) -> AsyncClient:
    """Create one async client per browser session.

    Each client keeps its own auth storage (including the PKCE code verifier
    between the sign-in redirect and the callback), so sessions of different
    visitors never mix.
    """

    if not config.is_configured:
        raise ConfigurationError()

    return await acreate_client(
        (config.url or "").strip(),
        (config.anon_key or "").strip(),
        options=AsyncClientOptions(flow_type="pkce", persist_session=True),
    )
