"""
Gestionnaires d'exceptions utilisés par la factory.
- CheckoutError (taxonomie métier) -> JSON {"detail": message} avec son status_code
- HTTPException -> JSON {"detail": ...}
- Erreurs de validation de requête -> 400 (au lieu du 422 FastAPI)
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from anoint_checkout.errors import CheckoutError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.warning("checkout.error path=%s status=%s detail=%s", request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"detail": "Missing required parameters", "fields": [f for f in fields if f]},
        )
