"""
Supabase client initialization.
Single point of database connection, created on first use so that roles
and tests that never touch the database need no credentials.
"""

import asyncio
import concurrent.futures
import logging
from functools import lru_cache, wraps

from supabase import Client, create_client
from supabase.lib.client_options import ClientOptions

from config.settings import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    url = settings.supabase_url
    key = settings.supabase_service_key or settings.supabase_key
    if not url or not key:
        raise RuntimeError(
            "Supabase credentials not configured: set SUPABASE_URL and "
            "SUPABASE_SERVICE_KEY (or SUPABASE_KEY)"
        )

    # Schema isolation: staging uses its own schema, production uses public
    if settings.db_schema != "public":
        logger.info(f"[DB] Using schema {settings.db_schema}")
        return create_client(url, key, options=ClientOptions(schema=settings.db_schema))
    return create_client(url, key)


# Dedicated bounded thread pool for DB operations - prevents exhausting the
# default executor when many Supabase calls run concurrently.
_db_executor = concurrent.futures.ThreadPoolExecutor(
    max_workers=10,
    thread_name_prefix="supabase-db",
)


def run_sync(func):
    """
    Decorator to run synchronous Supabase operations in async context.
    Supabase Python SDK is synchronous, so we need this wrapper.
    Uses a dedicated bounded thread pool instead of the default executor.
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_db_executor, lambda: func(*args, **kwargs))
    return wrapper
