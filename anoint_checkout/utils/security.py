from fastapi import Request, HTTPException, Depends
from typing import Optional, Dict, Any

from anoint_checkout.config import ADMIN_EMAILS
from anoint_checkout.infra.supabase_client import get_supabase

COOKIE_NAME = "sb_access"

def determine_role(email: Optional[str], metadata: Dict[str, Any] | None) -> str:
    """
    Rôle applicatif:
    - "admin" si user_metadata.role == "admin" ou si l'email figure dans ADMIN_EMAILS
    - sinon "user"
    """
    if str((metadata or {}).get("role", "")).lower() == "admin":
        return "admin"
    if email and email.lower() in (e.lower() for e in ADMIN_EMAILS):
        return "admin"
    return "user"

def get_user_from_token(token: str) -> Dict[str, Any]:
    res = get_supabase().auth.get_user(token)
    user = getattr(res, "user", None)
    if user is None:
        return {}
    metadata = getattr(user, "user_metadata", None) or {}
    email = getattr(user, "email", None)
    return {
        "id": getattr(user, "id", None),
        "email": email,
        "role": determine_role(email, metadata),
        "metadata": metadata,
    }

def get_current_user(request: Request) -> Dict[str, Any]:
    # Hybride: priorité au Bearer, fallback cookie
    token = None
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
    if not token:
        token = request.cookies.get(COOKIE_NAME)

    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user = get_user_from_token(token)
    except Exception:
        raise HTTPException(status_code=401, detail="Session expired, please sign in again")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expired, please sign in again")
    return user

def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Forbidden")
    return user
