"""HTTP surface for the arena, usage and key views."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from llm_gateway.arena.chat import ChatProxy
from llm_gateway.arena.runner import ComparisonRunner
from llm_gateway.arena.session_store import SessionStore
from llm_gateway.arena.votes import VoteRecorder
from llm_gateway.clients.llm_client import LLMClient
from llm_gateway.clients.proxy_admin import ProxyAdminClient
from llm_gateway.config import AppConfig, load_config
from llm_gateway.errors import (
    AuthenticationError,
    ConflictError,
    GatewayError,
    InternalError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from llm_gateway.keys.issuer import KeyIssuer
from llm_gateway.keys.key_store import KeyStore
from llm_gateway.ledger.usage_store import UsageStore
from llm_gateway.models.arena import SessionSummary
from llm_gateway.models.keys import ApiKeyView
from llm_gateway.models.usage import CamelModel
from llm_gateway.registry import ModelRegistry, load_registry
from llm_gateway.usage.aggregator import CostAggregator, resolve_range

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: dict[type[GatewayError], int] = {
    ValidationError: 400,
    AuthenticationError: 401,
    NotFoundError: 404,
    ConflictError: 409,
    UpstreamError: 502,
    InternalError: 500,
}


class ComparisonRequest(CamelModel):
    models: list[str]
    prompt: str
    system_prompt: str | None = None


class VoteRequest(CamelModel):
    session_id: str
    winner: str


class ChatMessage(CamelModel):
    role: str
    content: str


class ChatRequest(CamelModel):
    model: str
    messages: list[ChatMessage]


class KeyRequest(CamelModel):
    name: str


def current_user(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
) -> str:
    """Identity forwarded by the auth layer in front of this service."""
    if not x_user_id or x_user_role == "pending":
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def _dump(model: CamelModel, **kwargs) -> dict:
    return model.model_dump(mode="json", by_alias=True, **kwargs)


def create_app(
    config: AppConfig | None = None,
    *,
    llm: LLMClient | None = None,
    registry: ModelRegistry | None = None,
    admin: ProxyAdminClient | None = None,
) -> FastAPI:
    config = config or load_config()
    registry = registry or load_registry(config.models.resolved_registry_path)
    if llm is None:
        llm = LLMClient(
            base_url=config.gateway.base_url,
            api_key=config.gateway.api_key,
            timeout=config.gateway.timeout,
            max_retries=config.gateway.max_retries,
        )
    if admin is None:
        admin = ProxyAdminClient(config.gateway.base_url, config.gateway.api_key)

    db_path = config.storage.resolved_db_path
    ledger = UsageStore(db_path=db_path)
    sessions = SessionStore(db_path=db_path)
    runner = ComparisonRunner(
        llm,
        sessions,
        ledger,
        registry,
        timeout=config.gateway.timeout,
        max_tokens=config.gateway.max_tokens,
        temperature=config.gateway.temperature,
    )
    votes = VoteRecorder(sessions)
    chat_proxy = ChatProxy(
        llm,
        ledger,
        registry,
        max_tokens=config.gateway.max_tokens,
        temperature=config.gateway.temperature,
    )
    aggregator = CostAggregator(
        ledger,
        recent_limit=config.usage.recent_limit,
        max_range_days=config.usage.max_range_days,
    )
    issuer = KeyIssuer(
        admin,
        KeyStore(db_path=db_path),
        duration=config.keys.duration,
        local_fallback=config.keys.local_fallback,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await llm.close()
        await admin.close()

    app = FastAPI(title="LLM Gateway", version="0.1.0", lifespan=lifespan)

    @app.exception_handler(GatewayError)
    async def _gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
        status = STATUS_BY_ERROR.get(type(exc), 500)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            message = "Internal server error" if status == 500 else str(exc)
        else:
            message = str(exc)
        return JSONResponse({"error": message}, status_code=status)

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid')}" if field else "Invalid request body"
        return JSONResponse({"error": message}, status_code=400)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/comparisons")
    async def create_comparison(body: ComparisonRequest, user_id: str = Depends(current_user)):
        result = await runner.run_comparison(
            user_id, body.models, body.prompt, body.system_prompt
        )
        return _dump(result, exclude_none=True)

    @app.get("/comparisons")
    def list_comparisons(user_id: str = Depends(current_user)):
        history = [
            _dump(SessionSummary(
                id=s.id, prompt=s.prompt, models=s.models, winner=s.winner, created_at=s.created_at,
            ))
            for s in sessions.list_for_user(user_id)
        ]
        return {"sessions": history}

    @app.post("/comparisons/vote")
    def vote(body: VoteRequest, user_id: str = Depends(current_user)):
        votes.record_vote(user_id, body.session_id, body.winner)
        return {"success": True}

    @app.get("/usage")
    def usage(
        start: str | None = None,
        end: str | None = None,
        user_id: str = Depends(current_user),
    ):
        start_dt, end_dt = resolve_range(
            start,
            end,
            default_days=config.usage.default_range_days,
            max_days=config.usage.max_range_days,
        )
        return _dump(aggregator.summarize(user_id, start_dt, end_dt))

    @app.post("/chat")
    async def chat(
        body: ChatRequest,
        user_id: str = Depends(current_user),
        x_api_key: str | None = Header(default=None, alias="X-Api-Key"),
    ):
        api_key_id = None
        if x_api_key:
            api_key_id = issuer.authenticate(user_id, x_api_key).id
        reply = await chat_proxy.chat(
            user_id,
            body.model,
            [m.model_dump() for m in body.messages],
            api_key=x_api_key,
            api_key_id=api_key_id,
        )
        return _dump(reply)

    @app.post("/keys")
    async def create_key(body: KeyRequest, user_id: str = Depends(current_user)):
        return _dump(await issuer.issue(user_id, body.name))

    @app.get("/keys")
    def list_keys(user_id: str = Depends(current_user)):
        return {"keys": [_dump(ApiKeyView.from_record(k)) for k in issuer.list_keys(user_id)]}

    @app.get("/keys/{key_id}")
    def get_key(key_id: str, user_id: str = Depends(current_user)):
        return {"key": _dump(ApiKeyView.from_record(issuer.get_key(user_id, key_id)))}

    @app.delete("/keys/{key_id}")
    async def revoke_key(key_id: str, user_id: str = Depends(current_user)):
        await issuer.revoke(user_id, key_id)
        return {"success": True}

    @app.get("/models")
    def models(type: str | None = None):
        return {"models": [_dump(m) for m in registry.list_models(type=type)]}

    @app.get("/models/{model_id:path}")
    def model_detail(model_id: str):
        info = registry.get(model_id)
        if info is None:
            raise NotFoundError("Model", model_id)
        return {"model": _dump(info)}

    return app
