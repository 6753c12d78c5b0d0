from typing import Optional

from supabase import create_client, Client
from supabase.lib.client_options import SyncClientOptions

from server.core.config.general_config import settings

RECEIPT_TABLE_NAME = "RECEIPT"


def get_supabase_service_role_client(timeout: Optional[float] = None) -> Client:
    """This function returns a supabase client with the service role key. The ledger writes need it."""
    url = settings.SUPABASE_URL
    key = settings.SUPABASE_SERVICE_ROLE_KEY
    if url is None or key is None:
        raise ValueError("SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is not set")
    options = SyncClientOptions(postgrest_client_timeout=timeout) if timeout else None
    return create_client(supabase_url=url, supabase_key=key, options=options)
