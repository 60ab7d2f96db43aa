#!/usr/bin/env python3
"""
ApiKit REST API Server

FastAPI front-end binding the configured URL paths to endpoint names.
Each bound path answers GET with the endpoint's composed values as JSON,
optionally guarded by an API key pool.
"""

import hmac
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import VERSION, config, configure_logging, load_server_config
from errors import (
    ApiKitError,
    ExtractionError,
    FetchError,
    UnknownEndpointError,
    find_cause,
)
from models import ExtractedValue, ServerConfig, ServerEndpointConfig
from services.client import ApiKitClient

logger = logging.getLogger(__name__)


# Response Models
class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = VERSION
    timestamp: str = Field(default_factory=lambda: str(time.time()))
    endpoints: List[str] = Field(default_factory=list)


def status_code_for(exc: BaseException) -> int:
    """
    HTTP status for a failed endpoint request

    Unknown endpoints are 404, an upstream document that could not be fetched
    or no longer matches the configured extraction rules is 502, everything
    else is an internal error.
    """
    if find_cause(exc, UnknownEndpointError) is not None:
        return 404
    if find_cause(exc, FetchError) is not None:
        return 502
    if find_cause(exc, ExtractionError) is not None:
        return 502
    return 500


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump()
    )


def _allowed_secrets(server_config: ServerConfig, binding: ServerEndpointConfig) -> List[str]:
    pool = set(binding.required_api_key_name_pool)
    return [key.secret for key in server_config.api_keys if key.name in pool]


def _is_authorized(api_key: Optional[str], allowed: List[str]) -> bool:
    if not api_key:
        return False
    return any(hmac.compare_digest(api_key.encode(), secret.encode()) for secret in allowed)


def make_endpoint_handler(client: ApiKitClient, binding: ServerEndpointConfig,
                          allowed_secrets: List[str]) -> Callable:
    """Create the GET handler serving one bound endpoint"""
    requires_key = bool(binding.required_api_key_name_pool)

    def handler(x_api_key: Optional[str] = Header(None, description="API key secret")):
        start_time = time.time()

        if requires_key and not _is_authorized(x_api_key, allowed_secrets):
            logger.warning(f"HTTP 401 {binding.path} rejected due to missing or invalid API key")
            return error_response(401, "Missing or invalid API key")

        try:
            result = client.get(binding.name)
        except ApiKitError as e:
            status_code = status_code_for(e)
            elapsed = int((time.time() - start_time) * 1000)
            logger.error(f"HTTP {status_code} {binding.path} in {elapsed}ms failed with {e}")
            return error_response(status_code, str(e))

        elapsed = int((time.time() - start_time) * 1000)
        logger.info(f"HTTP 200 {binding.path} in {elapsed}ms")
        return result

    return handler


def create_app(server_config: ServerConfig, client: Optional[ApiKitClient] = None) -> FastAPI:
    """
    Build the API application

    Args:
        server_config: Validated configuration
        client: Aggregating client, built from ``server_config.general`` when omitted

    Returns:
        FastAPI app with one GET route per bound endpoint
    """
    owns_client = client is None

    if client is None:
        logger.info("Apikit client setup started")
        client = ApiKitClient.from_config(server_config.general)
        logger.info("Apikit client setup finished")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifecycle"""
        logger.info("Starting ApiKit API server...")
        yield
        logger.info("Shutting down ApiKit API server...")
        if owns_client:
            client.close()

    app = FastAPI(
        title="ApiKit API",
        description="Compose JSON APIs from values extracted out of remote HTML documents",
        version=VERSION,
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.client = client
    app.state.server_config = server_config

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Health check endpoint"""
        return HealthResponse(endpoints=[binding.name for binding in server_config.endpoints])

    for binding in server_config.endpoints:
        app.add_api_route(
            binding.path,
            make_endpoint_handler(client, binding, _allowed_secrets(server_config, binding)),
            methods=["GET"],
            name=f"endpoint:{binding.name}",
            tags=["Endpoints"],
            response_model=Dict[str, ExtractedValue],
            responses={
                401: {"model": ErrorResponse},
                404: {"model": ErrorResponse},
                500: {"model": ErrorResponse},
                502: {"model": ErrorResponse},
            },
        )
        logger.debug(f"Registered endpoint {binding.name} at {binding.path}")

    # Error handlers
    @app.exception_handler(404)
    async def not_found_handler(request, exc):
        return error_response(404, "Endpoint not found")

    @app.exception_handler(500)
    async def internal_error_handler(request, exc):
        logger.error(f"Internal server error: {exc}")
        return error_response(500, "Internal server error")

    return app


def serve(server_config: ServerConfig, host: Optional[str] = None, port: Optional[int] = None):
    """Run the API server until interrupted"""
    bind_host, bind_port = server_config.bind_address(config.HOST, config.PORT)
    uvicorn.run(
        create_app(server_config),
        host=host or bind_host,
        port=port or bind_port,
        log_level="debug" if server_config.verbose_mode else config.LOG_LEVEL.lower()
    )


# Main entry point
if __name__ == "__main__":
    server_config = load_server_config()
    configure_logging(server_config.verbose_mode, config.LOG_FILE or None)
    serve(server_config)
