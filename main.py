# FILE: main.py
"""
Chat Search Backend - FastAPI Application
Version: 0.1.0

Features:
- Embedding generation for chat messages (OpenAI text-embedding-3-small)
- Incremental re-embedding via content hashes
- Background embedding queue with priority and retry
- Scheduled sweep endpoint for messages missing embeddings
- User-scoped semantic search over chat history
"""
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

from app.db import init_db, SessionLocal
from app.auth import is_auth_configured
from app.embeddings import build_services, EmbeddingConfig, EmbeddingMode
from app.embeddings.router import (
    router as embeddings_router,
    search_router,
    cron_router,
)

logging.basicConfig(
    level=os.getenv("ORB_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("chat_search")

app = FastAPI(
    title="Chat Search",
    version="0.1.0",
    description="Semantic vector search over chat history",
)

# ====== CORS ======

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ====== STARTUP / SHUTDOWN ======

@app.on_event("startup")
def on_startup():
    os.makedirs("data", exist_ok=True)

    init_db()

    config = EmbeddingConfig.from_env()
    app.state.embedding_services = build_services(SessionLocal, config=config)

    logger.info(f"[startup] Embedding mode: {config.mode.value} (auto_generate={config.auto_generate})")
    logger.info(
        f"[startup] batch_size={config.batch_size} delay={config.processing_delay_ms}ms "
        f"max_retries={config.max_retries} retries_enabled={config.enable_retries}"
    )

    if os.getenv("OPENAI_API_KEY"):
        logger.info("[startup] OPENAI_API_KEY: [OK] set (enables embeddings + search)")
    else:
        logger.warning("[startup] OPENAI_API_KEY: [X] NOT SET - embeddings and semantic search will fail")

    if is_auth_configured():
        logger.info("[startup] Session resolver: [OK] installed")
    else:
        logger.warning("[startup] Session resolver: [X] NOT INSTALLED - protected endpoints return 503")

    if config.cron_secret:
        logger.info("[startup] CRON_SECRET: [OK] set")
    elif config.cron_enabled or config.mode == EmbeddingMode.CRON:
        logger.warning("[startup] CRON_SECRET: [X] NOT SET - /cron/embeddings is unauthenticated")


@app.on_event("shutdown")
def on_shutdown():
    services = getattr(app.state, "embedding_services", None)
    if services is not None:
        status = services.queue.status()
        if status.queue_length:
            logger.warning(f"[shutdown] Dropping {status.queue_length} pending embedding jobs")
        services.queue.shutdown()


# ====== ROUTERS ======

app.include_router(search_router)
app.include_router(embeddings_router)
app.include_router(cron_router)


# ====== PUBLIC ENDPOINTS ======

@app.get("/ping")
def ping():
    """Health check (public)."""
    return {"status": "ok", "auth_configured": is_auth_configured()}
