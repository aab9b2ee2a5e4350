"""Database clients."""

from src.db.supabase import SupabaseClient

__all__ = ["SupabaseClient"]
