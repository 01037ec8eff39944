"""
Utilities for creating Supabase clients with consistent settings.
"""

from functools import lru_cache
from supabase import create_client, Client
import logging

from provenance.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """
    Create (and cache) the Supabase client used to fetch evidence files.

    Returns:
        Supabase Client instance configured with service role credentials.

    Raises:
        RuntimeError: If SUPABASE_URL / SUPABASE_SERVICE_KEY are not configured
    """
    if not settings.supabase_url or not settings.supabase_service_key:
        raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set to read from Supabase Storage")

    logger.info(f"[SUPABASE] Creating storage client for bucket '{settings.supabase_bucket}'")
    return create_client(settings.supabase_url, settings.supabase_service_key)
