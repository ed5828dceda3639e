"""
HTTP surface: challenge, login, chat and sync. Every error is rendered as
{"error": message} with the status code of its SovereignError class.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sovereign import __version__
from sovereign.core.errors import SovereignError, Unauthorized, ValidationError
from sovereign.service import Services, build_services

logger = logging.getLogger(__name__)


def _field(payload: Optional[Dict[str, Any]], *names: str) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    for name in names:
        value = payload.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()

    app = FastAPI(title="Sovereign AI memory", version=__version__)
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SovereignError)
    async def _sovereign_error(request: Request, exc: SovereignError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Malformed request body"})

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"ok": True, "version": __version__}

    @app.get("/auth/challenge")
    def auth_challenge(
        identity: Optional[str] = Query(default=None),
        pubkey: Optional[str] = Query(default=None),
    ) -> Dict[str, str]:
        claimed = (identity or pubkey or "").strip()
        if not claimed:
            raise ValidationError("Missing identity")
        return {"message": services.auth.request_challenge(claimed)}

    @app.post("/auth/login")
    def auth_login(payload: Optional[Dict[str, Any]] = Body(default=None)) -> Dict[str, str]:
        identity = _field(payload, "identity", "pubkey")
        signature = _field(payload, "signature")
        if not identity or not signature:
            raise ValidationError("Missing identity or signature")
        return {"token": services.auth.login(identity, signature)}

    @app.post("/chat")
    def chat(payload: Optional[Dict[str, Any]] = Body(default=None)) -> Dict[str, str]:
        token = _field(payload, "token")
        prompt = payload.get("prompt") if isinstance(payload, dict) else None
        if not token or not isinstance(prompt, str) or not prompt.strip():
            raise Unauthorized("Unauthorized or missing prompt")
        return {"response": services.chat.handle(token, prompt)}

    @app.post("/sync")
    def sync(payload: Optional[Dict[str, Any]] = Body(default=None)) -> Dict[str, Any]:
        token = _field(payload, "token")
        if not token:
            raise Unauthorized("Unauthorized")
        result = services.sync.sync(token)
        body: Dict[str, Any] = {"stateRoot": result.state_root, "message": result.message}
        if result.receipt is not None:
            body["receipt"] = result.receipt.to_dict()
        return body

    return app
