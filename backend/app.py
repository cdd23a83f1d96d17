"""
Repay Claims API
Mounts the claim router and warms the asset registry on startup.

Run: python app.py  (or: uvicorn app:app --port 8000)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.claim_router import router as claim_router
from infrastructure.config import get_config
from infrastructure.errors import register_exception_handlers
from services.claim_aggregator import get_claim_aggregator

logger = logging.getLogger("App")


@asynccontextmanager
async def lifespan(app: FastAPI):
    aggregator = get_claim_aggregator()
    aggregator.registry.start_warmup(get_config().repay.asset_types)
    logger.info("Registry warm-up scheduled")
    yield
    await aggregator.close()
    logger.info("RPC clients closed")


def create_app() -> FastAPI:
    app = FastAPI(title="Repay Claims", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(claim_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
