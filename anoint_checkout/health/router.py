from fastapi import APIRouter
from fastapi.responses import JSONResponse
from anoint_checkout.health import service as health_service

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/supabase")
def health_supabase():
    return JSONResponse(health_service.health_supabase_info())
