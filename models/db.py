import logging

from flask import current_app
from supabase import create_client, Client

from errors import DatabaseError

logger = logging.getLogger(__name__)


def init_supabase(app, client=None):
    """Attach a Supabase client to the app; created on first use when not given."""
    app.extensions["supabase"] = client


def get_supabase() -> Client:
    client = current_app.extensions.get("supabase")
    if client is not None:
        return client

    url = current_app.config.get("SUPABASE_URL")
    key = current_app.config.get("SUPABASE_KEY")
    if not url or not key:
        raise DatabaseError("Supabase is not configured (set SUPABASE_URL and SUPABASE_KEY).")
    try:
        client = create_client(url, key)
    except Exception as e:
        logger.exception("Supabase init failed")
        raise DatabaseError(f"Supabase init failed: {e}") from e
    logger.info("Supabase client initialized.")
    current_app.extensions["supabase"] = client
    return client


def run_query(query, action: str) -> list:
    """Execute a postgrest query builder and return its rows."""
    try:
        response = query.execute()
    except Exception as e:
        logger.exception("Supabase %s failed", action)
        raise DatabaseError(f"{action} failed: {e}") from e
    return response.data or []
