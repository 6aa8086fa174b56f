from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from sahasrara_spa import __version__
from sahasrara_spa.auth.crud import (
    CredentialStore,
    InvalidPinFormat,
    NoOpPinChange,
    WrongCurrentPin,
)
from sahasrara_spa.auth.deps import (
    get_business_tz,
    get_config,
    get_credentials,
    get_current_session,
    require_manager,
)
from sahasrara_spa.auth.gate import AuthGateMiddleware
from sahasrara_spa.auth.security import encode_session, is_valid_pin, new_session
from sahasrara_spa.config import Config, load_config
from sahasrara_spa.db import connect, init_db
from sahasrara_spa.errors import ApiError, BadRequest, InternalError, Locked, NotFound, Unauthorized
from sahasrara_spa.models import Session, TREATMENT_TYPES
from sahasrara_spa.transactions.crud import (
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    TransactionValidationError,
    create_transaction,
    delete_transaction,
    fetch_matching,
    get_transaction,
    list_transactions,
    parse_payload,
    to_response,
    update_transaction,
)
from sahasrara_spa.transactions.report import export_filename, render_csv, revenue_summary
from sahasrara_spa.util.time import epoch_ms, zone


WEB_DIR = Path(__file__).resolve().parents[1] / "web"


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


# -----------------------------
# Request models
# -----------------------------

# Fields are typed loosely on purpose: validation errors must come back as the
# dashboard's own messages, not as pydantic's.


class LoginRequest(BaseModel):
    pin: Any = None
    rememberMe: Any = False


class ChangePinRequest(BaseModel):
    currentPin: Any = None
    newPin: Any = None


class TransactionRequest(BaseModel):
    nama: Any = None
    umur: Any = None
    jenisKelamin: Any = None
    beratBadan: Any = None
    panjangBadan: Any = None
    namaOrtu: Any = None
    alamat: Any = None
    tindakan: Any = None
    biaya: Any = None
    keterangan: Any = None
    tanggal: Any = None


class TransactionUpdateRequest(TransactionRequest):
    id: Any = None


# -----------------------------
# Cookies
# -----------------------------


def _cookie_secure(cfg: Config) -> bool:
    """Return whether the session cookie should be marked Secure."""
    samesite = str(cfg.AUTH_COOKIE_SAMESITE or "strict").lower()
    # Browsers require Secure when SameSite=None
    if samesite == "none":
        return True
    return bool(cfg.AUTH_COOKIE_SECURE)


def set_session_cookie(response: Response, *, token: str, max_age: int, cfg: Config) -> None:
    response.set_cookie(
        key=cfg.AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite=str(cfg.AUTH_COOKIE_SAMESITE or "strict").lower(),
        secure=_cookie_secure(cfg),
        max_age=max_age,
        path=cfg.AUTH_COOKIE_PATH or "/",
    )


def clear_session_cookie(response: Response, cfg: Config) -> None:
    response.set_cookie(
        key=cfg.AUTH_COOKIE_NAME,
        value="",
        httponly=True,
        samesite=str(cfg.AUTH_COOKIE_SAMESITE or "strict").lower(),
        secure=_cookie_secure(cfg),
        max_age=0,
        path=cfg.AUTH_COOKIE_PATH or "/",
    )


# -----------------------------
# App factory
# -----------------------------


def create_app(cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg or load_config()
    app = FastAPI(title="Sahasrara Baby Spa", version=__version__)
    app.state.cfg = cfg
    app.state.credentials = CredentialStore(cfg)
    app.state.business_tz = zone(cfg.BUSINESS_TIMEZONE)

    # Added first so the gate runs inside CORS (preflight responses never hit the gate).
    app.add_middleware(AuthGateMiddleware, cfg=cfg)

    _cors_origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if _cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.on_event("startup")
    def _on_startup() -> None:
        init_db(cfg.DB_DSN)
        boot = app.state.credentials.bootstrap_if_empty()
        if boot:
            _debug(f"Bootstrapped initial account: email={boot.get('email')} role={boot.get('role')}")

    _register_error_handlers(app)
    app.include_router(_pages_router())
    app.include_router(_auth_router())
    app.include_router(_transactions_router())
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"success": False, "error": "Permintaan tidak valid"})

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        _debug(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# -----------------------------
# Pages
# -----------------------------


def _pages_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok"}

    @router.get("/login", response_class=HTMLResponse)
    def login_page() -> HTMLResponse:
        return HTMLResponse((WEB_DIR / "login.html").read_text(encoding="utf-8"))

    @router.get("/", response_class=HTMLResponse)
    def dashboard_page() -> HTMLResponse:
        return HTMLResponse((WEB_DIR / "index.html").read_text(encoding="utf-8"))

    return router


# -----------------------------
# Auth
# -----------------------------


def _auth_router() -> APIRouter:
    router = APIRouter(prefix="/auth")

    @router.post("/login")
    def auth_login(
        payload: LoginRequest,
        response: Response,
        cfg: Config = Depends(get_config),
        store: CredentialStore = Depends(get_credentials),
    ) -> Dict[str, Any]:
        pin = payload.pin
        if not pin or not isinstance(pin, str):
            raise BadRequest("PIN diperlukan")
        if len(pin) != 4:
            raise BadRequest("PIN harus 4 digit")

        status = store.lockout_status()
        if status.locked:
            raise Locked(
                "Terlalu banyak percobaan. Coba lagi nanti",
                extra={"retry_after_sec": status.retry_after_sec},
            )

        account = store.verify(pin)
        if account is None:
            failed = store.register_failure()
            if failed.locked:
                raise Locked(
                    "Terlalu banyak percobaan. Coba lagi nanti",
                    extra={"retry_after_sec": failed.retry_after_sec},
                )
            raise Unauthorized("PIN salah")

        store.reset_failures()
        store.touch_last_login(int(account["user_id"]))

        remember_me = payload.rememberMe is True
        session = new_session(
            user_id=int(account["user_id"]),
            user_name=str(account["name"]),
            user_role=str(account["role"]),
            remember_me=remember_me,
        )
        token = encode_session(session, secret=cfg.AUTH_SESSION_SECRET)
        max_age = int((session.expires_at - session.issued_at).total_seconds())
        set_session_cookie(response, token=token, max_age=max_age, cfg=cfg)
        _debug(f"Login user_id={account['user_id']} remember_me={remember_me}")

        return {
            "success": True,
            "message": "Login berhasil",
            "user": {
                "id": account["user_id"],
                "name": account["name"],
                "email": account["email"],
                "role": account["role"],
            },
            "session": {
                "issuedAt": epoch_ms(session.issued_at),
                "expiresAt": epoch_ms(session.expires_at),
                "rememberMe": remember_me,
            },
        }

    @router.api_route("/logout", methods=["GET", "POST"])
    def auth_logout(response: Response, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
        clear_session_cookie(response, cfg)
        return {"success": True, "message": "Logout berhasil"}

    @router.get("/check")
    def auth_check(session: Session = Depends(get_current_session)) -> Dict[str, Any]:
        return {
            "success": True,
            "session": {
                "authenticated": True,
                "expiresAt": epoch_ms(session.expires_at),
                "rememberMe": session.remember_me,
            },
        }

    @router.post("/change-pin")
    def auth_change_pin(
        payload: ChangePinRequest,
        store: CredentialStore = Depends(get_credentials),
    ) -> Dict[str, Any]:
        current, new = payload.currentPin, payload.newPin
        if not current or not new:
            raise BadRequest("PIN saat ini dan PIN baru diperlukan")
        # Requests that can never succeed are answered before the lockout state is read.
        if not is_valid_pin(current) or not is_valid_pin(new):
            raise BadRequest("PIN harus 4 digit angka")
        if current == new:
            raise BadRequest("PIN baru tidak boleh sama dengan PIN saat ini")

        status = store.lockout_status()
        if status.locked:
            raise Locked(
                "Terlalu banyak percobaan. Coba lagi nanti",
                extra={"retry_after_sec": status.retry_after_sec},
            )

        try:
            account = store.change(current, new)
        except InvalidPinFormat:
            raise BadRequest("PIN harus 4 digit angka")
        except NoOpPinChange:
            raise BadRequest("PIN baru tidak boleh sama dengan PIN saat ini")
        except WrongCurrentPin:
            store.register_failure()
            raise Unauthorized("PIN saat ini salah")

        store.reset_failures()
        return {
            "success": True,
            "message": "PIN berhasil diubah",
            "data": {
                "userName": account["name"],
                # Only the first two digits, for confirmation.
                "newPin": str(new)[:2] + "**",
            },
        }

    @router.get("/users")
    def auth_users(
        _manager: Session = Depends(require_manager),
        store: CredentialStore = Depends(get_credentials),
    ) -> Dict[str, Any]:
        return {"success": True, "message": "Daftar User", "data": store.list_accounts()}

    return router


# -----------------------------
# Transactions
# -----------------------------


def _filters(
    search: Optional[str],
    treatment_type: Optional[str],
    start_date: Optional[str],
    end_date: Optional[str],
) -> Dict[str, Any]:
    return {
        "search": search,
        "treatment_type": treatment_type,
        "start_date": start_date,
        "end_date": end_date,
    }


def _transactions_router() -> APIRouter:
    router = APIRouter(prefix="/transactions")

    @router.get("")
    def transactions_list(
        page: int = Query(1, ge=1),
        limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
        search: Optional[str] = None,
        treatmentType: Optional[str] = None,
        tindakan: Optional[str] = None,
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        try:
            with connect(cfg.DB_DSN) as conn:
                rows, total = list_transactions(
                    conn,
                    page=page,
                    limit=limit,
                    **_filters(search, treatmentType or tindakan, startDate, endDate),
                )
        except ValueError:
            raise BadRequest("Filter tanggal tidak valid")
        except Exception as e:
            _debug(f"Error fetching transactions: {e!r}")
            raise InternalError("Internal server error")

        return {
            "success": True,
            "data": [to_response(r, external_sex=True) for r in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": (total + limit - 1) // limit,
            },
        }

    @router.post("")
    def transactions_create(payload: TransactionRequest, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
        try:
            fields = parse_payload(payload.model_dump())
        except TransactionValidationError as e:
            raise BadRequest(str(e))

        try:
            with connect(cfg.DB_DSN) as conn:
                row = create_transaction(conn, fields)
        except Exception as e:
            _debug(f"Error creating transaction: {e!r}")
            raise InternalError("Internal server error")

        return {
            "success": True,
            "data": to_response(row, external_sex=False),
            "message": "Transaksi berhasil disimpan",
        }

    @router.put("")
    def transactions_update(
        payload: TransactionUpdateRequest,
        cfg: Config = Depends(get_config),
    ) -> Dict[str, Any]:
        if not payload.id:
            raise BadRequest("ID transaksi diperlukan")
        try:
            fields = parse_payload(payload.model_dump())
        except TransactionValidationError as e:
            raise BadRequest(str(e))

        try:
            with connect(cfg.DB_DSN) as conn:
                row = update_transaction(conn, str(payload.id), fields)
        except Exception as e:
            _debug(f"Error updating transaction: {e!r}")
            raise InternalError("Internal server error")

        if row is None:
            raise NotFound("Transaksi tidak ditemukan")
        return {
            "success": True,
            "data": to_response(row, external_sex=False),
            "message": "Transaksi berhasil diperbarui",
        }

    @router.delete("")
    def transactions_delete(id: Optional[str] = None, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
        if not id:
            raise BadRequest("ID transaksi diperlukan")
        try:
            with connect(cfg.DB_DSN) as conn:
                deleted = delete_transaction(conn, id)
        except Exception as e:
            _debug(f"Error deleting transaction: {e!r}")
            raise InternalError("Internal server error")

        if not deleted:
            raise NotFound("Transaksi tidak ditemukan")
        return {"success": True, "message": "Transaksi berhasil dihapus"}

    @router.get("/treatments")
    def transactions_treatments() -> Dict[str, Any]:
        data: List[Dict[str, str]] = [{"value": k, "label": v} for k, v in TREATMENT_TYPES.items()]
        return {"success": True, "data": data}

    @router.get("/summary")
    def transactions_summary(
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
        treatmentType: Optional[str] = None,
        tindakan: Optional[str] = None,
        cfg: Config = Depends(get_config),
        tz: tzinfo = Depends(get_business_tz),
    ) -> Dict[str, Any]:
        try:
            with connect(cfg.DB_DSN) as conn:
                data = revenue_summary(conn, tz=tz, **_filters(None, treatmentType or tindakan, startDate, endDate))
        except ValueError:
            raise BadRequest("Filter tanggal tidak valid")
        except Exception as e:
            _debug(f"Error building summary: {e!r}")
            raise InternalError("Internal server error")
        return {"success": True, "data": data}

    @router.get("/export")
    def transactions_export(
        search: Optional[str] = None,
        startDate: Optional[str] = None,
        endDate: Optional[str] = None,
        treatmentType: Optional[str] = None,
        tindakan: Optional[str] = None,
        cfg: Config = Depends(get_config),
        tz: tzinfo = Depends(get_business_tz),
    ) -> Response:
        t = treatmentType or tindakan
        try:
            with connect(cfg.DB_DSN) as conn:
                rows = fetch_matching(conn, **_filters(search, t, startDate, endDate))
        except ValueError:
            raise BadRequest("Filter tanggal tidak valid")
        except Exception as e:
            _debug(f"Error exporting transactions: {e!r}")
            raise InternalError("Internal server error")

        filename = export_filename(
            start_date=startDate,
            end_date=endDate,
            treatment_type=t,
            today=datetime.now(timezone.utc).date(),
        )
        return Response(
            content=render_csv(rows, tz=tz),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    @router.get("/{transaction_id}")
    def transactions_get(transaction_id: str, cfg: Config = Depends(get_config)) -> Dict[str, Any]:
        with connect(cfg.DB_DSN) as conn:
            row = get_transaction(conn, transaction_id)
        if row is None:
            raise NotFound("Transaksi tidak ditemukan")
        return {"success": True, "data": to_response(row, external_sex=True)}

    return router


app = create_app()
