"""Configuration package (Facade).

Re-exports the public config types so the rest of the codebase imports from a
single, stable path instead of the defining module:

	from app.services.config import SupabaseConfig
"""

from app.services.config.supabase_config import SupabaseConfig

__all__ = ["SupabaseConfig"]
