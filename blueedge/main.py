"""FastAPI entrypoint: ``uvicorn blueedge.main:app``."""

import logging
import sys

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from .config import settings
from .middleware import RequestLoggingMiddleware
from .middleware.logging import ACCESS_LOGGER_NAME
from .routers import analysis, chat, documents, gemini, health, rag, search

ROUTERS = (
    (health.router, "health"),
    (documents.router, "documents"),
    (chat.router, "chat"),
    (search.router, "search"),
    (rag.router, "rag"),
    (gemini.router, "gemini"),
    (analysis.router, "analysis"),
)


def configure_logging() -> None:
    logging.basicConfig(level=logging.INFO, handlers=[logging.StreamHandler(sys.stdout)])
    logging.getLogger(ACCESS_LOGGER_NAME).setLevel(logging.INFO)


def configure_sentry() -> bool:
    dsn = str(settings.sentry_dsn or "").strip()
    if not dsn.lower().startswith(("http://", "https://")):
        return False
    sentry_sdk.init(
        dsn=dsn,
        environment=settings.environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=settings.sentry_traces_sample_rate,
        profiles_sample_rate=settings.sentry_profiles_sample_rate,
    )
    return True


configure_logging()
configure_sentry()

app = FastAPI(title="BlueEdge Document Analysis API", version="0.1.0")
app.add_middleware(RequestLoggingMiddleware)

if settings.metrics_enabled:
    Instrumentator(should_group_status_codes=True, should_ignore_untemplated=True).instrument(app).expose(
        app, include_in_schema=False
    )

# the document workspace front end runs on a separate origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router, tag in ROUTERS:
    app.include_router(router, tags=[tag])
