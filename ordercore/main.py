# ordercore/main.py
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from ordercore.api.routers import carts, health, orders, payments
from ordercore.data.database import Base, engine
from ordercore.utils.logging import get_logger

# IMPORT WSZYSTKICH MODELI PRZED CREATE_ALL
from ordercore.data import models  # noqa: F401

logger = get_logger(__name__)


def init_db() -> None:
    logger.info(f"Initializing database, tables: {list(Base.metadata.tables.keys())}")
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise
    logger.info("Database tables created")


def create_app(init_schema: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if init_schema:
            init_db()
        yield

    app = FastAPI(
        title="Order Core",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Include routers
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
