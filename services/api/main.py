from datetime import datetime, timezone
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from swap_engine.config import AppSettings
from swap_engine.errors import SwapError, TokenResolutionError
from swap_engine.execution.solana_executor import SolanaSwapExecutor, SwapContext
from swap_engine.webhook import WebhookSwap, is_authorized

app = FastAPI(title="Swap Engine API")
settings = AppSettings()


@lru_cache(maxsize=1)
def _build_executor() -> SolanaSwapExecutor:
    return SolanaSwapExecutor(SwapContext.create(settings))


def get_executor() -> SolanaSwapExecutor:
    try:
        return _build_executor()
    except ValueError as e:
        logger.error("Swap executor is not configured: {}", e)
        raise HTTPException(
            status_code=503, detail=f"Swap executor is not configured: {e}"
        ) from e


async def require_auth(request: Request) -> bytes:
    body = await request.body()
    if not is_authorized(
        body,
        signature=request.headers.get("X-Signature"),
        api_key=request.headers.get("X-API-KEY"),
        secret=settings.webhook_secret,
        expected_api_key=settings.webhook_api_key,
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return body


@app.get("/health")
def health():
    return {"status": "ok"}


def _error_response(e: SwapError) -> JSONResponse:
    if isinstance(e, TokenResolutionError):
        status = 400
    elif e.indeterminate:
        status = 409
    else:
        status = 502
    content = {
        "status": "error",
        "error": e.kind,
        "message": str(e),
        "indeterminate": e.indeterminate,
    }
    if e.signature is not None:
        content["signature"] = e.signature
    if e.bundle_id is not None:
        content["bundle_id"] = e.bundle_id
    return JSONResponse(status_code=status, content=content)


@app.post("/webhook")
async def webhook(
    body: bytes = Depends(require_auth),
    executor: SolanaSwapExecutor = Depends(get_executor),
):
    try:
        req = WebhookSwap.model_validate_json(body)
    except ValidationError as e:
        detail = e.errors(include_url=False, include_context=False, include_input=False)
        raise HTTPException(status_code=422, detail=detail) from e

    try:
        input_mint, output_mint = await run_in_threadpool(
            req.resolved_mints, settings.dexscreener_search_url, settings.http_timeout_sec
        )
        result = await run_in_threadpool(
            executor.swap, input_mint, output_mint, req.amount, req.max_slippage_bps
        )
    except SwapError as e:
        return _error_response(e)
    except Exception as e:
        logger.exception("Webhook error: {}", e)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return {
        "status": "success",
        **result.to_dict(),
        "time": datetime.now(timezone.utc).isoformat(),
    }
