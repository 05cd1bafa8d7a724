from __future__ import annotations

import time
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from libs.core import logging as core_logging
from libs.framework.tool_runtime import (
    InternalFault,
    InvalidPayloadError,
    ToolNotFoundError,
    ToolRegistry,
)
from services.parking.app.mcp import create_mcp_asgi_app
from services.parking.parking_core import (
    EMPTY_REQUEST_BODY,
    EXAMPLE_REQUEST_BODY,
    PARKING_TOOL_NAME,
    ServiceSettings,
    build_registry,
    create_provider,
    load_settings,
)

LOGGER = core_logging.get_logger("parking")

_INVALID_PAYLOAD_MESSAGE = "Formato incorrecto. Se espera { input: { data: {...} } }"


def _invalid_payload_response(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": _INVALID_PAYLOAD_MESSAGE,
            "detalle": detail,
            "ejemplo": EMPTY_REQUEST_BODY,
        },
    )


def _is_missing_data(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return True
    data = payload.get("data")
    if data is None:
        return True
    # Empty objects and lists still count as present.
    return not isinstance(data, (dict, list)) and not data


def _tool_not_found_response(exc: ToolNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"error": "Herramienta no encontrada", "herramientasDisponibles": exc.available},
    )


def _internal_error_response(exc: BaseException, settings: ServiceSettings) -> JSONResponse:
    detail = exc.detail if isinstance(exc, InternalFault) else (str(exc) or type(exc).__name__)
    content: Dict[str, Any] = {
        "error": "Error interno al procesar la solicitud",
        "detalle": detail,
    }
    if settings.is_development:
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content=content)


def create_app(
    registry: ToolRegistry,
    settings: Optional[ServiceSettings] = None,
    *,
    mount_mcp: bool = True,
) -> FastAPI:
    settings = settings or ServiceSettings()
    started_at = time.monotonic()

    app = FastAPI(title="Parking Analysis Service")
    app.state.registry = registry
    app.state.settings = settings

    if mount_mcp:
        mcp_app, mcp_session_manager = create_mcp_asgi_app(registry)
        app.mount("/mcp/rpc", mcp_app)

        @app.on_event("startup")
        async def _startup_mcp_session_manager() -> None:
            session_cm = mcp_session_manager.run()
            app.state._mcp_session_cm = session_cm
            await session_cm.__aenter__()

        @app.on_event("shutdown")
        async def _shutdown_mcp_session_manager() -> None:
            session_cm = getattr(app.state, "_mcp_session_cm", None)
            if session_cm is not None:
                await session_cm.__aexit__(None, None, None)

    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        request_started = time.perf_counter()
        response = await call_next(request)
        LOGGER.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=int((time.perf_counter() - request_started) * 1000),
        )
        return response

    @app.post("/mcp-tool/{tool_name}")
    async def invoke_tool(tool_name: str, request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            return _invalid_payload_response("request body is not valid JSON")
        payload = body.get("input") if isinstance(body, dict) else None
        # Body shape is rejected before the tool lookup.
        if _is_missing_data(payload):
            return _invalid_payload_response("input.data is required")
        if tool_name not in registry:
            return _tool_not_found_response(ToolNotFoundError(tool_name, registry.names()))
        try:
            result = await run_in_threadpool(registry.dispatch, tool_name, payload)
        except ToolNotFoundError as exc:
            return _tool_not_found_response(exc)
        except InvalidPayloadError as exc:
            LOGGER.info("invalid_payload", tool_name=tool_name, detail=exc.detail)
            return _invalid_payload_response(exc.detail)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("tool_invocation_failed", tool_name=tool_name, error=str(exc), exc_info=True)
            return _internal_error_response(exc, settings)
        return JSONResponse(content={"success": True, **result.model_dump(exclude_none=True)})

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "OK",
            "tools": registry.names(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - started_at, 3),
            "env": settings.environment,
        }

    @app.get("/ejemplo")
    def example() -> Dict[str, Any]:
        return {
            "description": "Ejemplo de estructura esperada",
            "request": {
                "method": "POST",
                "url": f"/mcp-tool/{PARKING_TOOL_NAME}",
                "body": EXAMPLE_REQUEST_BODY,
            },
        }

    return app


def create_app_from_env() -> FastAPI:
    core_logging.configure_logging("parking")
    settings = load_settings()
    registry = build_registry(create_provider(settings))
    LOGGER.info(
        "parking_service_configured",
        tools=registry.names(),
        model=settings.model,
        environment=settings.environment,
    )
    return create_app(registry, settings)


def run() -> None:
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app_from_env(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
