import sys

from fastapi import FastAPI, Request, Response
from loguru import logger

from meubolso.api.routes import router
from meubolso.config import get_settings

settings = get_settings()

# Configure loguru
logger.remove()
logger.add(sys.stderr, level=settings.log_level, format="{time:HH:mm:ss} | {level:<7} | {message}")

app = FastAPI(title="Meu Bolso WhatsApp", version="0.1.0")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info("{} {}", request.method, request.url.path)
    response: Response = await call_next(request)
    logger.info("→ {}", response.status_code)
    return response


app.include_router(router)


@app.on_event("shutdown")
def shutdown():
    """Close the WAHA HTTP connection pool."""
    from meubolso.deps import get_waha

    if get_waha.cache_info().currsize:
        get_waha().close()
        logger.info("WAHA client closed")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=True)
