from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field
from starlette.concurrency import run_in_threadpool

from garnet_platform import __version__
from garnet_platform.api.errors import install_error_handlers
from garnet_platform.api.middleware import install_edge_guard
from garnet_platform.auth.crud import (
    account_state_loader,
    bootstrap_admin_if_needed,
    set_account_active,
    update_account_role,
)
from garnet_platform.auth.deps import (
    extract_token,
    get_current_account,
    require_admin,
    require_checklist_sync,
    require_questionnaire_access,
    require_vendor_access,
)
from garnet_platform.auth.guard import AccessGuard, rule_for_path
from garnet_platform.auth.roles import Role, parse_role
from garnet_platform.auth.security import Claims
from garnet_platform.auth.service import authenticate, register, token_for_account
from garnet_platform.billing.stripe_billing import (
    create_billing_portal_session,
    create_checkout_session,
    process_stripe_webhook,
)
from garnet_platform.config import Config, load_config
from garnet_platform.db import connect, init_db
from garnet_platform.errors import DependencyError, ValidationError
from garnet_platform.questionnaires.answers import list_vendor_answers
from garnet_platform.questionnaires.sync import reconcile
from garnet_platform.remote.client import ComplianceApiClient
from garnet_platform.vendors.resolver import VendorIdResolver


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


# -----------------------------
# Request bodies
# -----------------------------
# Fields are optional at the schema level so missing fields produce our own
# 400 messages instead of pydantic's.


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SignupRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("full_name", "fullName"))
    role: Optional[str] = None
    organization: Optional[str] = None


class CreateAccountRequest(SignupRequest):
    pass


class RoleChangeRequest(BaseModel):
    role: str


class SyncChecklistRequest(BaseModel):
    vendorId: Optional[str] = Field(default=None, validation_alias=AliasChoices("vendorId", "vendorExternalId"))
    checklistId: Optional[str] = Field(default=None, validation_alias=AliasChoices("checklistId", "checklistScopeId"))


class CheckoutSessionRequest(BaseModel):
    plan: str = "monthly"  # monthly|yearly


def _set_auth_cookie(response: Response, *, token: str, cfg: Config) -> None:
    """Set the httpOnly session cookie for browser-based auth."""
    response.set_cookie(
        key=cfg.AUTH_COOKIE_NAME,
        value=str(token),
        httponly=True,
        samesite=cfg.AUTH_COOKIE_SAMESITE,
        secure=cfg.cookie_secure,
        max_age=int(cfg.AUTH_TOKEN_EXPIRE_MINUTES) * 60,
        path=cfg.AUTH_COOKIE_PATH,
        domain=cfg.AUTH_COOKIE_DOMAIN,
    )


def _clear_auth_cookie(response: Response, cfg: Config) -> None:
    response.delete_cookie(key=cfg.AUTH_COOKIE_NAME, path=cfg.AUTH_COOKIE_PATH, domain=cfg.AUTH_COOKIE_DOMAIN)


def create_app(cfg: Optional[Config] = None, *, compliance_client: Optional[ComplianceApiClient] = None) -> FastAPI:
    """Build the API. Config is read from the environment when not given.

    Run with: uvicorn garnet_platform.api.server:create_app --factory
    """
    cfg = (cfg or load_config()).validate()

    app = FastAPI(title="Garnet Platform API", version=__version__)
    app.state.cfg = cfg
    app.state.guard = AccessGuard(
        secret=cfg.AUTH_JWT_SECRET,
        load_account_state=account_state_loader(cfg.DB_DSN),
    )
    app.state.compliance = compliance_client

    install_error_handlers(app)
    install_edge_guard(app, guard_getter=lambda: app.state.guard, cookie_name=cfg.AUTH_COOKIE_NAME)

    # CORS is mainly needed for local development (frontend dev server -> API).
    if cfg.CORS_ALLOW_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(cfg.CORS_ALLOW_ORIGINS),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.on_event("startup")
    def _on_startup() -> None:
        init_db(cfg.DB_DSN)

        # Bootstrap first admin if configured (only when users table is empty)
        with connect(cfg.DB_DSN) as conn:
            bootstrap_admin_if_needed(
                conn,
                email=cfg.AUTH_BOOTSTRAP_ADMIN_EMAIL,
                password=cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD,
            )

        if app.state.compliance is None and cfg.COMPLIANCE_API_URL:
            app.state.compliance = ComplianceApiClient(
                cfg.COMPLIANCE_API_URL,
                timeout=cfg.COMPLIANCE_API_TIMEOUT_SECONDS,
            )

    @app.on_event("shutdown")
    def _on_shutdown() -> None:
        client = app.state.compliance
        if client is not None:
            client.close()

    # -----------------------------
    # Health
    # -----------------------------

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    # -----------------------------
    # Auth
    # -----------------------------

    @app.post("/api/auth/login")
    def auth_login(payload: LoginRequest, response: Response) -> Dict[str, Any]:
        if not (payload.email or "").strip() or not payload.password:
            raise ValidationError("Email and password are required")

        with connect(cfg.DB_DSN) as conn:
            result = authenticate(conn, cfg, email=payload.email, password=payload.password)

        _set_auth_cookie(response, token=result.token, cfg=cfg)
        return {"message": "Login successful", "token": result.token, "user": result.account}

    @app.post("/api/auth/signup", status_code=201)
    def auth_signup(payload: SignupRequest, response: Response) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            account = register(
                conn,
                email=payload.email,
                password=payload.password,
                full_name=payload.full_name,
                role=payload.role,
                organization=payload.organization,
            )

        token = token_for_account(cfg, account)
        _set_auth_cookie(response, token=token, cfg=cfg)
        return {"message": "Successfully signed up!", "token": token, "user": account}

    @app.post("/api/auth/logout")
    def auth_logout(response: Response) -> Dict[str, Any]:
        """Clear the browser session cookie. Tokens stay valid until they expire."""
        _clear_auth_cookie(response, cfg)
        return {"ok": True}

    @app.get("/api/auth/me")
    def auth_me(account: Dict[str, Any] = Depends(get_current_account)) -> Dict[str, Any]:
        return {"user": account}

    @app.get("/api/auth/access")
    def auth_access(request: Request, path: str = Query(..., min_length=1)) -> Dict[str, Any]:
        """Render gating for client views: same guard, same rules as the edge."""
        rule = rule_for_path(path)
        if rule is None:
            return {"path": path, "protected": False, "state": None, "action": "allow", "redirect_to": None}

        token = extract_token(request, cfg.AUTH_COOKIE_NAME)
        decision = app.state.guard.evaluate(token, rule, path)
        return {"path": path, "protected": True, **decision.to_dict()}

    # -----------------------------
    # Admin: accounts
    # -----------------------------

    @app.post("/api/admin/users", status_code=201)
    def admin_create_account(
        payload: CreateAccountRequest,
        _admin: Claims = Depends(require_admin),
    ) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            account = register(
                conn,
                email=payload.email,
                password=payload.password,
                full_name=payload.full_name,
                role=payload.role,
                organization=payload.organization,
                allowed_roles=tuple(Role),
            )
        return {"user": account}

    @app.post("/api/admin/users/{user_id}/role")
    def admin_change_role(
        user_id: int,
        payload: RoleChangeRequest,
        _admin: Claims = Depends(require_admin),
    ) -> Dict[str, Any]:
        role = parse_role(payload.role)
        with connect(cfg.DB_DSN) as conn:
            account = update_account_role(conn, user_id, role)
        _debug(f"role changed user_id={user_id} role={role.value}")
        return {"user": account}

    @app.post("/api/admin/users/{user_id}/deactivate")
    def admin_deactivate(user_id: int, _admin: Claims = Depends(require_admin)) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            account = set_account_active(conn, user_id, False)
        _debug(f"account deactivated user_id={user_id}")
        return {"user": account}

    @app.post("/api/admin/users/{user_id}/activate")
    def admin_activate(user_id: int, _admin: Claims = Depends(require_admin)) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            account = set_account_active(conn, user_id, True)
        return {"user": account}

    # -----------------------------
    # Questionnaires (local store)
    # -----------------------------

    @app.post("/api/questionnaires/sync-checklist")
    def sync_checklist(
        payload: SyncChecklistRequest,
        _claims: Claims = Depends(require_checklist_sync),
    ) -> Dict[str, Any]:
        if not (payload.vendorId or "").strip():
            raise ValidationError("Vendor ID is required", kind="vendor_id_required")

        with connect(cfg.DB_DSN) as conn:
            result = reconcile(
                conn,
                payload.vendorId,
                (payload.checklistId or "").strip() or None,
                resolver=VendorIdResolver(conn),
            )
        return result.to_response()

    @app.get("/api/questionnaires/vendor/{vendor_id}/answers")
    def vendor_answers(
        vendor_id: str,
        _claims: Claims = Depends(require_questionnaire_access),
    ) -> Any:
        with connect(cfg.DB_DSN) as conn:
            return list_vendor_answers(conn, vendor_id, resolver=VendorIdResolver(conn))

    # -----------------------------
    # Remote compliance API (proxy)
    # -----------------------------

    def _compliance() -> ComplianceApiClient:
        client = app.state.compliance
        if client is None:
            raise DependencyError("Compliance API is not configured", kind="compliance_api_not_configured")
        return client

    def _forward(request: Request, method: str, path: str, body: Any = None) -> JSONResponse:
        token = extract_token(request, cfg.AUTH_COOKIE_NAME)
        remote = _compliance().request(
            method,
            path,
            token=token,
            json=body,
            params=dict(request.query_params) or None,
        )
        return JSONResponse(status_code=remote.status_code, content=remote.data)

    @app.get("/api/questionnaires")
    def list_questionnaires(request: Request, _claims: Claims = Depends(require_questionnaire_access)) -> JSONResponse:
        return _forward(request, "GET", "/api/questionnaires")

    @app.post("/api/questionnaires")
    async def create_questionnaire(
        request: Request,
        _claims: Claims = Depends(require_questionnaire_access),
    ) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Request body must be JSON")
        # requests is blocking; keep it off the event loop.

        return await run_in_threadpool(_forward, request, "POST", "/api/questionnaires", body)

    @app.get("/api/vendors")
    def list_vendors(request: Request, _claims: Claims = Depends(require_vendor_access)) -> JSONResponse:
        return _forward(request, "GET", "/api/vendors")

    @app.get("/api/vendors/{vendor_id}")
    def get_vendor(vendor_id: str, request: Request, _claims: Claims = Depends(require_vendor_access)) -> JSONResponse:
        return _forward(request, "GET", f"/api/vendors/{vendor_id}")

    # -----------------------------
    # Billing (Stripe)
    # -----------------------------

    @app.get("/api/billing/plans")
    def billing_plans() -> Dict[str, Any]:
        """Expose configured plan price IDs so the frontend can render pricing."""
        return {
            "monthly": cfg.STRIPE_PRICE_ID_MONTHLY,
            "yearly": cfg.STRIPE_PRICE_ID_YEARLY,
            "enabled": cfg.billing_enabled,
        }

    @app.get("/api/billing/status")
    def billing_status(account: Dict[str, Any] = Depends(get_current_account)) -> Dict[str, Any]:
        return {
            "subscription_status": account["subscription_status"],
            "current_period_end": account.get("current_period_end"),
            "cancel_at_period_end": account.get("cancel_at_period_end"),
            "billing_enabled": cfg.billing_enabled,
        }

    @app.post("/api/billing/checkout-session")
    def billing_checkout_session(
        payload: CheckoutSessionRequest,
        account: Dict[str, Any] = Depends(get_current_account),
    ) -> Dict[str, Any]:
        plan = (payload.plan or "monthly").strip().lower()
        if plan not in ("monthly", "yearly"):
            raise ValidationError("Plan must be monthly or yearly", kind="invalid_plan")

        price_id = cfg.STRIPE_PRICE_ID_MONTHLY if plan == "monthly" else cfg.STRIPE_PRICE_ID_YEARLY
        if not price_id:
            raise ValidationError("Plan is not configured", kind="plan_not_configured")

        base = cfg.PUBLIC_APP_URL.rstrip("/")
        url = create_checkout_session(
            cfg,
            user_id=int(account["user_id"]),
            price_id=str(price_id),
            success_url=f"{base}/billing?checkout=success",
            cancel_url=f"{base}/pricing?canceled=true",
            customer_id=account.get("stripe_customer_id") or None,
            customer_email=str(account["email"]),
        )
        return {"url": url}

    @app.post("/api/billing/portal-session")
    def billing_portal_session(account: Dict[str, Any] = Depends(get_current_account)) -> Dict[str, Any]:
        customer_id = (account.get("stripe_customer_id") or "").strip()
        if not customer_id:
            raise ValidationError("No Stripe customer for this account", kind="stripe_customer_missing")

        url = create_billing_portal_session(
            cfg,
            customer_id=customer_id,
            return_url=f"{cfg.PUBLIC_APP_URL.rstrip('/')}/billing",
        )
        return {"url": url}

    @app.post("/api/billing/stripe/webhook")
    async def billing_stripe_webhook(
        request: Request,
        stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
    ) -> Dict[str, Any]:
        payload_bytes = await request.body()

        event_id, processed = await run_in_threadpool(
            lambda: process_stripe_webhook(cfg, payload_bytes=payload_bytes, signature=stripe_signature)
        )
        return {"ok": True, "event_id": event_id, "processed": processed}

    return app
