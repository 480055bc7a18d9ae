from typing import Optional
from supabase import create_client, Client
from internhub.config import SUPABASE_URL, SUPABASE_ANON

_supabase: Optional[Client] = None

def get_supabase() -> Client:
    """
    Client Supabase 'anon' partagé.
    Sert uniquement à vérifier les jetons d'accès (supabase.auth.get_user).
    """
    global _supabase
    if _supabase is None:
        if not SUPABASE_URL or not SUPABASE_ANON:
            raise RuntimeError("SUPABASE_URL/SUPABASE_ANON_KEY manquants")
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON)
    return _supabase
