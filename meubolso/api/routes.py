from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger

from meubolso.deps import get_dispatcher, get_waha
from meubolso.pipeline.dispatcher import WebhookDispatcher
from meubolso.waha.client import WahaClient

router = APIRouter()


@router.get("/health")
def health(waha: WahaClient = Depends(get_waha)):
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "whatsapp": waha.is_session_connected(),
    }


@router.post("/webhook")
async def waha_webhook(
    request: Request,
    dispatcher: WebhookDispatcher = Depends(get_dispatcher),
):
    # Raw body goes to the dispatcher so unparseable JSON is acknowledged like any other failure
    raw = await request.body()
    result = await run_in_threadpool(dispatcher.handle, raw)
    logger.info("Webhook outcome: {}", result.outcome.value)
    return JSONResponse(status_code=result.status_code, content=result.body)
