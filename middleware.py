"""
API request metrics middleware.

Every ``/api/*`` response is counted once, after the response has been
produced, on the best-effort runner. AppError handlers stash the error on
``request.state`` so error responses are recorded with their error code;
exceptions that escape to the server error handler are recorded as 500s.
"""

from __future__ import annotations

from typing import Awaitable, Callable

from fastapi import FastAPI, Request, Response

from services.metrics_service import MetricsStore, RequestMetricsContext
from shared.logging import get_logger
from shared.request_info import api_resource

log = get_logger(__name__)

ERROR_STATE_ATTR = "api_error"


def register_metrics_middleware(app: FastAPI) -> None:
    """Install the HTTP middleware that records API metrics."""

    @app.middleware("http")
    async def record_api_metrics(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if api_resource(request.url.path) is None:
            return await call_next(request)

        context = RequestMetricsContext.from_request(request)
        metrics = MetricsStore(request.app.state.kv)
        runner = request.app.state.runner

        try:
            response = await call_next(request)
        except Exception as exc:
            runner.spawn(
                metrics.record_api_error_metrics(context, exc),
                label="api-metrics:unhandled",
            )
            raise

        error = getattr(request.state, ERROR_STATE_ATTR, None)
        if error is not None:
            runner.spawn(
                metrics.record_api_error_metrics(context, error),
                label=f"api-metrics:{context.resource}",
            )
        else:
            runner.spawn(
                metrics.record_api_metrics(context, response.status_code),
                label=f"api-metrics:{context.resource}",
            )
        return response
