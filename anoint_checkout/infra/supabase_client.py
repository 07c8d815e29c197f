from typing import Optional
from supabase import create_client, Client
from anoint_checkout.config import SUPABASE_URL, SUPABASE_ANON, SUPABASE_SERVICE_KEY

_supabase: Optional[Client] = None
_service_supabase: Optional[Client] = None

def _connect(key: str, key_name: str) -> Client:
    if not SUPABASE_URL:
        raise RuntimeError("SUPABASE_URL manquant: stockage des commandes indisponible")
    if not key:
        raise RuntimeError(f"{key_name} manquant: stockage des commandes indisponible")
    return create_client(SUPABASE_URL, key)

def get_supabase() -> Client:
    """Client 'anon': vérification des jetons des routes admin."""
    global _supabase
    if _supabase is None:
        _supabase = _connect(SUPABASE_ANON, "SUPABASE_ANON_KEY")
    return _supabase

def get_service_supabase() -> Client:
    """
    Client 'service' (bypass RLS): utilisé par les repositories commandes/paniers,
    car les webhooks et le poller écrivent sans session utilisateur.
    """
    global _service_supabase
    if _service_supabase is None:
        _service_supabase = _connect(SUPABASE_SERVICE_KEY, "SUPABASE_SERVICE_KEY")
    return _service_supabase
