"""Database configuration and Supabase client initialization"""
import os
from dotenv import load_dotenv
from supabase import create_client, Client

load_dotenv()

_supabase: Client = None


def get_supabase() -> Client:
    """Get the Supabase client instance, creating it on first use"""
    global _supabase
    if _supabase is None:
        # Anon key requires insert/update policies on users, referrals and email_logs
        url = os.environ.get('SUPABASE_URL')
        key = os.environ.get('SUPABASE_SERVICE_ROLE_KEY') or os.environ.get('SUPABASE_ANON_KEY')

        if not url or not key:
            raise ValueError(
                "Missing required environment variables: SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY "
                "(or SUPABASE_ANON_KEY) must be set. "
                "Please configure these in your environment or .env file."
            )

        _supabase = create_client(url, key)
    return _supabase
