import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from checkout.api.v1.router import api_router
from checkout.core.config import get_settings
from checkout.core.deps import close_http_client
from checkout.core.errors import CheckoutError, FlowStateError, IncompleteConfigurationError
from checkout.services.flows import FlowNotFound, flow_registry

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers.update(
            {
                "X-Content-Type-Options": "nosniff",
                "X-Frame-Options": "DENY",
                "Cache-Control": "no-store",
                "Strict-Transport-Security": "max-age=63072000; includeSubDomains; preload",
            }
        )
        return response


async def _flow_not_found(request: Request, exc: FlowNotFound):
    return JSONResponse({"detail": str(exc)}, status_code=404)


async def _flow_state_error(request: Request, exc: FlowStateError):
    return JSONResponse({"detail": str(exc)}, status_code=409)


async def _incomplete_configuration(request: Request, exc: IncompleteConfigurationError):
    logger.error("checkout flow opened with incomplete plan data (%s)", request.url.path)
    return JSONResponse({"detail": exc.message, "kind": exc.kind}, status_code=400)


async def _checkout_error(request: Request, exc: CheckoutError):
    return JSONResponse({"detail": exc.message, "kind": exc.kind}, status_code=502)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    flow_registry.close_all()
    await close_http_client()


def get_application() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_exception_handler(FlowNotFound, _flow_not_found)
    app.add_exception_handler(FlowStateError, _flow_state_error)
    app.add_exception_handler(IncompleteConfigurationError, _incomplete_configuration)
    app.add_exception_handler(CheckoutError, _checkout_error)
    app.include_router(api_router)
    return app


app = get_application()
