"""
News RAG Chat Application Entry Point

This module defines the FastAPI application instance, constructs the
process-scoped resources in the lifespan, registers all routers and error
handlers, and provides a test-friendly application factory.

Startup Order
-------------
1. Shared httpx client (used by the OpenAI-compatible adapters)
2. Embedding and generation capabilities
3. Session backing store (Redis or in-process) and SessionStore
4. Corpus load; CorpusIndex.build() runs as a background task, so chat
   requests answer 503 until it completes instead of blocking startup.
   An embedder that is still warming up is retried with backoff; any other
   load or build failure is terminal and chat then answers 500
5. ChatOrchestrator on app.state

Everything opened here is closed on shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, settings as default_settings
from .core.errors import (
    NewsRagError,
    NotReadyError,
    news_rag_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from .api import chat_routes, health_routes
from .chat.context import ContextAssembler
from .chat.orchestrator import ChatOrchestrator
from .corpus.index import CorpusIndex
from .corpus.loader import load_articles
from .embeddings.embedder import EmbeddingEngine, HashingEmbedder, OpenAIEmbedder
from .llm.client import EchoGenerator, GenerationEngine, OpenAIChatGenerator
from .sessions.backends import (
    InMemorySessionBackend,
    RedisSessionBackend,
    SessionBackend,
)
from .sessions.store import SessionStore


logger = logging.getLogger("newsrag.app")


# ---------------------------------------------------------------------
# Resource Construction
# ---------------------------------------------------------------------

def build_embedder(cfg: Settings, http: httpx.AsyncClient) -> EmbeddingEngine:
    if cfg.embedding_backend == "openai":
        return OpenAIEmbedder(
            client=http,
            api_key=cfg.openai_api_key.get_secret_value(),
            model=cfg.embedding_model,
            base_url=cfg.openai_base_url,
        )
    return HashingEmbedder(dim=cfg.embedding_dim)


def build_generator(cfg: Settings, http: httpx.AsyncClient) -> GenerationEngine:
    if cfg.generation_backend == "openai":
        return OpenAIChatGenerator(
            client=http,
            api_key=cfg.openai_api_key.get_secret_value(),
            model=cfg.chat_model,
            base_url=cfg.openai_base_url,
        )
    return EchoGenerator()


def build_session_backend(cfg: Settings) -> SessionBackend:
    if cfg.session_backend == "redis":
        return RedisSessionBackend.from_url(cfg.redis_url)
    return InMemorySessionBackend()


async def _build_corpus(
    index: CorpusIndex,
    corpus_path: str,
    retry_initial: float = 1.0,
    retry_max: float = 30.0,
) -> None:
    """
    Load the corpus and build the index, retrying while the embedder warms up.

    NotReadyError from the embedder is retried with exponential backoff;
    any other failure marks the index as failed for good.
    """
    try:
        articles = await asyncio.to_thread(load_articles, corpus_path)
    except Exception as exc:
        logger.exception("Corpus load from %s failed", corpus_path)
        index.mark_failed(f"corpus load failed ({type(exc).__name__})")
        return

    delay = retry_initial
    while True:
        try:
            await index.build(articles)
            return
        except NotReadyError:
            logger.warning("Embedder not ready; retrying corpus build in %.1fs", delay)
        except Exception as exc:
            logger.exception("Corpus index build failed")
            index.mark_failed(f"index build failed ({type(exc).__name__})")
            return

        await asyncio.sleep(delay)
        delay = min(delay * 2, retry_max)


def make_lifespan(cfg: Settings):
    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting news-rag-chat")

        http = httpx.AsyncClient(timeout=cfg.request_timeout)
        backend = build_session_backend(cfg)

        index = CorpusIndex(build_embedder(cfg, http))
        app.state.orchestrator = ChatOrchestrator(
            index=index,
            generator=build_generator(cfg, http),
            sessions=SessionStore(
                backend,
                ttl_seconds=cfg.session_ttl_seconds,
                key_prefix=cfg.session_key_prefix,
                shape_policy=cfg.session_shape_policy,
            ),
            assembler=ContextAssembler(max_chars=cfg.context_max_chars),
            top_k=cfg.retrieval_top_k,
            max_sentences_per_article=cfg.context_max_sentences,
            max_new_tokens=cfg.max_new_tokens,
        )
        build_task = asyncio.create_task(
            _build_corpus(
                index,
                cfg.corpus_path,
                retry_initial=cfg.corpus_build_retry_initial,
                retry_max=cfg.corpus_build_retry_max,
            )
        )

        try:
            yield
        finally:
            logger.info("Shutting down news-rag-chat")
            build_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await build_task
            await backend.close()
            await http.aclose()

    return lifespan


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    cfg : Optional[Settings]
        Settings to run with. Defaults to the environment-derived settings.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    cfg = cfg or default_settings
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="news-rag-chat",
        version="1.0.0",
        lifespan=make_lifespan(cfg),
    )

    # --------------------------------------------------------------
    # Middleware & Error Handling
    # --------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    app.add_exception_handler(NewsRagError, news_rag_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(chat_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
