from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from garnet_platform.errors import AuthenticationError, GarnetError


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


def install_error_handlers(app: FastAPI) -> None:
    """Serialize every error as {error, kind}; never leak tracebacks."""

    @app.exception_handler(GarnetError)
    async def _garnet_error(request: Request, exc: GarnetError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request body", "kind": "validation_error", "errors": problems},
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        _debug(f"unhandled error on {request.method} {request.url.path}: {exc.__class__.__name__}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "kind": "internal_error"},
        )
