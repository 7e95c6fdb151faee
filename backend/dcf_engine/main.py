"""
main.py — FastAPI Application Entrypoint

Purpose:
- Initialize application services (logging, config).
- Register API routers.
- Define root-level health/status endpoints.
- Provide `app` object used by ASGI server (uvicorn / hypercorn).

No business logic lives here.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dcf_engine.api.v1 import scenarios, valuation
from dcf_engine.core.config import settings
from dcf_engine.core.logging import configure_logging

# -----------------------------------------------------------------------------
# App Initialization
# -----------------------------------------------------------------------------

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title="DCF Engine",
    description="Three-statement projection and DCF valuation engine",
    version="0.1.0",
)

# -----------------------------------------------------------------------------
# CORS
# -----------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------------------------------------------------------
# Router Registration
# -----------------------------------------------------------------------------

app.include_router(valuation.router, prefix="/api/v1")
app.include_router(scenarios.router, prefix="/api/v1")

# -----------------------------------------------------------------------------
# Health Check
# -----------------------------------------------------------------------------

@app.get("/")
def root():
    return {"status": "ok", "message": "DCF engine running"}


@app.get("/health")
def health():
    return {"status": "ok", "terminal_value_method": settings.TERMINAL_VALUE_METHOD}
