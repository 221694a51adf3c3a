# core/supabase_client.py

from typing import Optional

from supabase import create_client, Client
from core.config import settings
from core.logging_config import logger


_client: Optional[Client] = None


# ============================================================
# Supabase Client Factory (ALWAYS service role)
# ============================================================
def get_supabase_client() -> Optional[Client]:
    """
    Shared Supabase client using the SERVICE ROLE KEY.
    REQUIRED for:
        - auth.get_user (token verification)
        - conditional writes on principals / permission_requests / invitations
    Returns None when credentials are missing or the client cannot be built;
    the next call tries again.
    """
    global _client
    if _client is not None:
        return _client

    supabase_url = settings.SUPABASE_URL
    supabase_key = settings.SUPABASE_SERVICE_ROLE_KEY  # MUST be service-role

    if not supabase_url or not supabase_key:
        logger.error(
            f"Missing Supabase credentials (URL: {supabase_url}, "
            f"SERVICE ROLE KEY: {'SET' if supabase_key else 'MISSING'})"
        )
        return None

    try:
        _client = create_client(supabase_url, supabase_key)
    except Exception as e:
        logger.error(f"Supabase Init Error: {e}", exc_info=True)
        return None
    return _client
