"""
Supabase module for Gym Tracker
Handles the hosted database/auth connection
"""

import logging
import os

from supabase import Client, create_client

logger = logging.getLogger(__name__)


def get_supabase_url():
    """Get Supabase project URL from environment variable"""
    return os.getenv('SUPABASE_URL') or os.getenv('NEXT_PUBLIC_SUPABASE_URL')


def get_supabase_key():
    """Get Supabase anon key from environment variable"""
    return os.getenv('SUPABASE_ANON_KEY') or os.getenv('NEXT_PUBLIC_SUPABASE_ANON_KEY')


def is_configured():
    """Check if both project URL and anon key are set"""
    return bool(get_supabase_url() and get_supabase_key())


def get_client(access_token=None) -> Client:
    """
    Create a Supabase client with the anon key.

    When an access token is given, PostgREST requests run as that user so
    row-level security applies to every query.
    """
    url = get_supabase_url()
    key = get_supabase_key()
    if not url or not key:
        raise ValueError("Supabase not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY environment variables.")

    client = create_client(url, key)
    if access_token:
        client.postgrest.auth(access_token)
    return client


def check_supabase_connection():
    """Check if the Supabase project is reachable"""
    if not is_configured():
        return False
    try:
        get_client().table('machines').select('id').limit(1).execute()
        return True
    except Exception as e:
        logger.warning("Supabase connection failed: %s", e)
        return False
