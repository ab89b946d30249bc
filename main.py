from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Settings, get_settings
from logging_config import setup_logging
from core.broadcaster import Broadcaster
from core.ledger import LedgerRecorder
from core.locks import SessionLocks
from core.session_manager import SessionManager
from core.storage import StorageAdapter, create_storage
from api import sessions, transactions, websocket

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, storage: Optional[StorageAdapter] = None) -> FastAPI:
    """
    建立 FastAPI app

    參數：
        settings: 設定（預設讀環境變數 / .env）
        storage: 指定的 Storage Adapter（測試用；預設依設定建立）
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: 建立 storage / broadcaster / ledger / manager，整個行程共用
        setup_logging(settings.log_level)
        app.state.storage = storage or create_storage(settings)
        app.state.broadcaster = Broadcaster()
        app.state.manager = SessionManager(
            app.state.storage,
            LedgerRecorder(app.state.storage),
            app.state.broadcaster,
            SessionLocks(enabled=settings.serialize_commands),
        )
        logger.info(f"Chip ledger ready (serialize_commands={settings.serialize_commands})")
        yield
        # Shutdown: 釋放資料庫連線
        await app.state.storage.close()

    app = FastAPI(
        title="Poker Chip Ledger API",
        description="Live multi-player poker chip ledger with real-time settlement",
        version="1.0.0",
        lifespan=lifespan
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(sessions.router)
    app.include_router(transactions.router)
    app.include_router(websocket.router)

    @app.get("/")
    def root():
        return {"message": "Poker Chip Ledger API", "status": "ok"}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
