from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from liquidglass.core.errors import LiquidGlassError
from liquidglass.core.modules.models import AudioQuality, ModuleInfo, SearchResults, StreamInfo
from liquidglass.core.modules.registry import ModuleRegistry
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.policy.validator import URLValidator, sanitize_url
from liquidglass.core.trace import TRACE_HEADER, resolve_trace_id, trace_context
from liquidglass.web.models import (
    ClearedResponse,
    DynamicModuleRequest,
    ModuleListResponse,
    RateLimitResponse,
    SanitizeUrlResponse,
    SearchAllResponse,
    ToggleResponse,
    UrlCheckRequest,
    UrlCheckResponse,
    ViolationListResponse,
)


_STATUS_BY_CODE = {
    "invalid_format": 400,
    "invalid_response": 502,
    "initialization_error": 400,
    "invalid_url": 400,
    "blocked_scheme": 403,
    "insecure_connection": 403,
    "domain_not_allowed": 403,
    "untrusted_certificate": 403,
    "expired_signature": 403,
    "unsupported_algorithm": 403,
    "signature_verification_failed": 403,
    "security_violation": 403,
    "not_authenticated": 401,
    "module_id_conflict": 409,
    "module_disabled": 404,
    "track_not_found": 404,
    "album_not_found": 404,
    "artist_not_found": 404,
    "stream_not_available": 404,
    "not_implemented": 501,
    "rate_limited": 429,
    "network_error": 502,
    "execution_failed": 502,
}


def status_for_error(exc: LiquidGlassError) -> int:
    return _STATUS_BY_CODE.get(exc.code, 500)


def create_app(
    *,
    registry: ModuleRegistry,
    policy_store: PolicyStore,
    validator: URLValidator,
    logger: Optional[logging.Logger] = None,
) -> FastAPI:
    log = logger or logging.getLogger("liquidglass.web")
    app = FastAPI(title="LiquidGlass Modules", version="1.0.0")

    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        trace_id = resolve_trace_id(request.headers.get(TRACE_HEADER))
        request.state.trace_id = trace_id
        with trace_context(trace_id):
            response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        return response

    @app.exception_handler(LiquidGlassError)
    async def liquidglass_error_handler(request: Request, exc: LiquidGlassError):
        code = status_for_error(exc)
        trace_id = getattr(getattr(request, "state", None), "trace_id", "web")
        log.warning("[%s] %s %s -> %s (%s)", trace_id, request.method, request.url.path, code, exc.code)
        payload = exc.to_dict()
        return JSONResponse(status_code=code, content={"detail": exc.user_message, "code": exc.code, "context": payload["context"]})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid request.", "code": "validation_error"})

    def _info_or_404(module_id: str) -> ModuleInfo:
        info = registry.get_module_info(module_id)
        if info is None:
            raise HTTPException(status_code=404, detail="Module not found.")
        return info

    @app.get("/health")
    def health():
        return {"status": "ok", "modules": len(registry.get_all_module_infos()), "enabled": len(registry.get_enabled_modules())}

    # ---- modules ----
    @app.get("/v1/modules", response_model=ModuleListResponse)
    def list_modules():
        return ModuleListResponse(modules=registry.get_all_module_infos())

    @app.get("/v1/modules/{module_id}", response_model=ModuleInfo)
    def get_module(module_id: str):
        return _info_or_404(module_id)

    @app.post("/v1/modules/{module_id}/enable", response_model=ToggleResponse)
    def enable_module(module_id: str):
        _info_or_404(module_id)
        ok = registry.enable_module(module_id)
        return ToggleResponse(module=_info_or_404(module_id), ok=ok)

    @app.post("/v1/modules/{module_id}/disable", response_model=ToggleResponse)
    def disable_module(module_id: str):
        _info_or_404(module_id)
        ok = registry.disable_module(module_id)
        return ToggleResponse(module=_info_or_404(module_id), ok=ok)

    @app.post("/v1/modules/{module_id}/toggle", response_model=ToggleResponse)
    def toggle_module(module_id: str):
        before = _info_or_404(module_id)
        enabled = registry.toggle_module(module_id)
        # toggling on can fail the signature check; that is reported, not raised
        ok = enabled or before.is_enabled
        return ToggleResponse(module=_info_or_404(module_id), ok=ok)

    @app.post("/v1/modules/dynamic", response_model=ModuleInfo, status_code=201)
    def register_dynamic(req: DynamicModuleRequest):
        return registry.register_dynamic_module(req.source_code)

    @app.delete("/v1/modules/dynamic/{module_id}")
    def delete_dynamic(module_id: str):
        if not registry.delete_dynamic_module(module_id):
            raise HTTPException(status_code=404, detail="Dynamic module not found.")
        return {"deleted": module_id}

    # ---- search / stream ----
    @app.get("/v1/search", response_model=SearchAllResponse)
    def search_all(q: str = Query(min_length=1, max_length=512), limit: int = Query(default=25, ge=1, le=200)):
        return SearchAllResponse(query=q, results=registry.search_all(q, limit))

    @app.get("/v1/modules/{module_id}/search", response_model=SearchResults)
    def search_module(module_id: str, q: str = Query(min_length=1, max_length=512), limit: int = Query(default=25, ge=1, le=200)):
        return registry.search(module_id, q, limit)

    @app.get("/v1/modules/{module_id}/stream/{track_id}", response_model=StreamInfo)
    def get_stream(module_id: str, track_id: str, quality: AudioQuality = AudioQuality.LOSSLESS):
        return registry.get_stream(module_id, track_id, quality)

    # ---- policy ----
    @app.get("/v1/violations", response_model=ViolationListResponse)
    def list_violations(module_id: Optional[str] = None):
        return ViolationListResponse(violations=policy_store.get_violations(module_id))

    @app.delete("/v1/violations", response_model=ClearedResponse)
    def clear_violations(module_id: Optional[str] = None):
        return ClearedResponse(cleared=policy_store.clear_violations(module_id))

    @app.get("/v1/rate-limits/{module_id}", response_model=RateLimitResponse)
    def rate_limit(module_id: str):
        state = policy_store.rate_limit_state(module_id)
        return RateLimitResponse(
            module_id=module_id,
            rate_limited=policy_store.is_rate_limited(module_id),
            remaining_seconds=policy_store.rate_limit_remaining(module_id),
            hit_count=state.hit_count if state is not None else 0,
        )

    @app.post("/v1/validate-url", response_model=UrlCheckResponse)
    def validate_url(req: UrlCheckRequest):
        try:
            validator.validate_module_url(req.url, req.module_id)
        except LiquidGlassError as e:
            return UrlCheckResponse(allowed=False, code=e.code, detail=e.user_message)
        return UrlCheckResponse(allowed=True)

    @app.post("/v1/sanitize-url", response_model=SanitizeUrlResponse)
    def sanitize(req: UrlCheckRequest):
        return SanitizeUrlResponse(url=sanitize_url(req.url))

    return app
