from .service import health_supabase_info

__all__ = ["health_supabase_info"]
