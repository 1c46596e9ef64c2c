"""FastAPI application wiring for the identity gate."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import get_settings
from .domain.account import Role
from .domain.gate import IdentityGate
from .domain.provisioning import ProvisioningOrchestrator
from .domain.service import AccountService
from .repository import PostgresAccountRepository
from .security.verifier import SupabaseIdentityVerifier

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the gate components once and share them for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    http_client = httpx.Client(timeout=settings.verifier_timeout_seconds)

    repository = PostgresAccountRepository(pool)
    verifier = SupabaseIdentityVerifier(
        http_client,
        base_url=settings.supabase_url,
        api_key=settings.supabase_anon_key,
        precheck=settings.token_precheck,
    )
    orchestrator = ProvisioningOrchestrator(
        repository,
        default_role=Role(settings.default_role),
        tenant_name_prefix=settings.tenant_name_prefix,
    )
    app.state.identity_gate = IdentityGate(verifier, orchestrator)
    app.state.account_service = AccountService(repository)
    try:
        yield
    finally:
        http_client.close()
        pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

# CORS for local frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
