from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Body, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from meridian.config.settings import load_settings
from meridian.errors import RateLimited
from meridian.store.facility_store import InMemoryFacilityStore
from meridian.store.loaders import load_facilities
from meridian.tools.service import OPERATIONS, AnalysisService

logger = logging.getLogger(__name__)

ENV_PATH = Path(__file__).resolve().parents[1] / ".env"
CALLER_HEADER = "X-Caller-Id"


class HealthResponse(BaseModel):
    status: str = "ok"
    facilities: int
    store_version: int


def build_default_service() -> AnalysisService:
    """Service over the facilities named by ``FACILITY_DATA_PATH`` (empty when unset)."""
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH)
    settings = load_settings()
    store = InMemoryFacilityStore()
    if settings.facility_data_path:
        try:
            store.replace(load_facilities(settings.facility_data_path))
        except (OSError, ValueError) as exc:
            logger.error("Could not load facility data from %s: %s", settings.facility_data_path, exc)
    else:
        logger.warning("FACILITY_DATA_PATH not set; serving an empty facility store")
    return AnalysisService(store, settings=settings)


def create_app(service: Optional[AnalysisService] = None) -> FastAPI:
    service = service or build_default_service()
    app = FastAPI(title="Meridian Facility Analysis API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.service = service

    def _caller_key(request: Request) -> str:
        header = (request.headers.get(CALLER_HEADER) or "").strip()
        if header:
            return header
        return request.client.host if request.client else "anonymous"

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        snapshot = service.store.snapshot()
        return HealthResponse(facilities=len(snapshot), store_version=snapshot.version)

    @app.post("/tools/{operation}")
    def run_tool(
        operation: str,
        request: Request,
        arguments: Optional[Dict[str, Any]] = Body(default=None),
    ) -> JSONResponse:
        if operation not in OPERATIONS:
            return JSONResponse(status_code=404, content={"error": f'Unknown operation "{operation}".'})
        if not service.admit(_caller_key(request)):
            return JSONResponse(status_code=429, content=RateLimited().to_payload())
        return JSONResponse(content=service.invoke(operation, arguments or {}))

    @app.get("/facilities/{facility_id}")
    def get_facility(facility_id: int, request: Request) -> JSONResponse:
        if not service.admit(_caller_key(request)):
            return JSONResponse(status_code=429, content=RateLimited().to_payload())
        result = service.invoke("getFacility", {"facilityId": facility_id})
        if "error" in result:
            return JSONResponse(status_code=404, content=result)
        return JSONResponse(content=result)

    return app


app = create_app()
