"""Edge access guard for page requests.

Runs before any route logic. Page paths listed in `PAGE_RULES` are checked
with the same `AccessGuard` the API dependencies and the client render-gating
endpoint use; API paths are left to their route dependencies.
"""

from __future__ import annotations

import posixpath
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.concurrency import run_in_threadpool

from garnet_platform.auth.deps import extract_token
from garnet_platform.auth.guard import PAGE_RULES, AccessAction, AccessGuard, AccessRule, rule_for_path


_SKIP_PREFIXES = ("/api/", "/health", "/docs", "/redoc", "/openapi.json", "/_next/", "/static/")

# Static assets served beside the pages (favicon.ico, robots.txt, bundles).
_ASSET_EXTENSIONS = frozenset(
    {".css", ".gif", ".ico", ".jpg", ".jpeg", ".js", ".map", ".png", ".svg", ".txt", ".webmanifest", ".webp", ".woff", ".woff2"}
)


def _is_exempt(path: str) -> bool:
    if path.startswith(_SKIP_PREFIXES):
        return True
    return posixpath.splitext(path)[1].lower() in _ASSET_EXTENSIONS


def install_edge_guard(
    app: FastAPI,
    *,
    guard_getter: Callable[[], AccessGuard],
    cookie_name: str,
    rules: Sequence[Tuple[str, AccessRule]] = PAGE_RULES,
) -> None:
    """Register the edge middleware on `app`.

    `guard_getter` is called per request so the guard can be built at startup.
    """

    @app.middleware("http")
    async def _edge_guard(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        path = request.url.path
        if _is_exempt(path):
            return await call_next(request)

        rule: Optional[AccessRule] = rule_for_path(path, rules)
        if rule is None:
            return await call_next(request)

        token = extract_token(request, cookie_name)
        # Token verification is CPU-only but the account lookup hits the store.
        decision = await run_in_threadpool(guard_getter().evaluate, token, rule, path)

        if decision.action is AccessAction.ALLOW:
            return await call_next(request)
        if decision.action is AccessAction.REDIRECT and decision.redirect_to:
            return RedirectResponse(url=decision.redirect_to, status_code=307)
        return JSONResponse(status_code=403, content={"error": "Access denied", "kind": decision.reason or "forbidden"})
