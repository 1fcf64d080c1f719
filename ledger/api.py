from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .errors import LedgerServiceError, NotFoundError, UserNotFoundError
from .logs import configure_logging
from .models import (
    BalanceField,
    GasCreditRequest,
    HomeCreditRequest,
    LedgerHistoryResponse,
    LoginRequest,
    Profile,
    ProfileResponse,
    ReconciliationReport,
    SignupRequest,
    UserListResponse,
    WithdrawRequest,
)
from .service import LedgerService


def get_service(request: Request) -> LedgerService:
    return request.app.state.ledger_service


def require_admin(
    x_admin_key: Optional[str] = Header(default=None),
    service: LedgerService = Depends(get_service),
) -> Optional[str]:
    service.gate.require(x_admin_key)
    return x_admin_key


async def ledger_error_handler(request: Request, exc: LedgerServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": str(exc)},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_params", "detail": jsonable_encoder(exc.errors())},
    )


def create_app(service: Optional[LedgerService] = None) -> FastAPI:
    settings = service.settings if service else get_settings()
    configure_logging(settings.log_level, settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "ledger_service", None) is None:
            app.state.ledger_service = LedgerService(settings)
        yield

    app = FastAPI(
        title="Wallet Ledger API",
        description="Home and gas-fee balances with an append-only transaction log",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.ledger_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "x-admin-key"],
    )
    app.add_exception_handler(LedgerServiceError, ledger_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "wallet-ledger"}

    @app.post("/api/signup", response_model=ProfileResponse, tags=["Users"])
    def signup(request: SignupRequest, service: LedgerService = Depends(get_service)) -> ProfileResponse:
        profile = service.signup(request.email, request.name, request.password)
        return ProfileResponse(profile=profile)

    @app.post("/api/login", response_model=ProfileResponse, tags=["Users"])
    def login(request: LoginRequest, service: LedgerService = Depends(get_service)) -> ProfileResponse:
        return ProfileResponse(profile=service.login(request.email, request.password))

    @app.get("/api/profile/{uid}", response_model=Profile, tags=["Users"])
    def get_profile(uid: str, service: LedgerService = Depends(get_service)) -> Profile:
        try:
            return service.get_profile(uid)
        except UserNotFoundError as e:
            raise NotFoundError(str(e)) from e

    @app.get("/api/users", response_model=UserListResponse, tags=["Admin"])
    def list_users(
        admin_key: Optional[str] = Depends(require_admin),
        service: LedgerService = Depends(get_service),
    ) -> UserListResponse:
        return UserListResponse(users=service.list_users(admin_key))

    @app.post("/api/deposits/manual", response_model=ProfileResponse, tags=["Admin"])
    def credit_gas(
        request: GasCreditRequest,
        admin_key: Optional[str] = Depends(require_admin),
        service: LedgerService = Depends(get_service),
    ) -> ProfileResponse:
        profile = service.admin_credit(
            request.uid, request.amount, BalanceField.GAS, admin_key=admin_key
        )
        return ProfileResponse(profile=profile)

    @app.post("/api/deposits/manual/home", response_model=ProfileResponse, tags=["Admin"])
    def credit_home(
        request: HomeCreditRequest,
        admin_key: Optional[str] = Depends(require_admin),
        service: LedgerService = Depends(get_service),
    ) -> ProfileResponse:
        profile = service.admin_credit(
            request.uid, request.amount, BalanceField.HOME, note=request.note, admin_key=admin_key
        )
        return ProfileResponse(profile=profile)

    @app.get("/api/deposits/{uid}", response_model=LedgerHistoryResponse, tags=["Ledger"])
    def recent_entries(
        uid: str,
        limit: Optional[int] = None,
        service: LedgerService = Depends(get_service),
    ) -> LedgerHistoryResponse:
        return LedgerHistoryResponse(deposits=service.recent_entries(uid, limit))

    @app.post("/api/withdraw", response_model=ProfileResponse, tags=["Ledger"])
    def withdraw(request: WithdrawRequest, service: LedgerService = Depends(get_service)) -> ProfileResponse:
        profile = service.withdraw(request.uid, request.principal_amount, request.gas_amount)
        return ProfileResponse(profile=profile)

    @app.get("/api/admin/reconcile/{uid}", response_model=ReconciliationReport, tags=["Admin"])
    def reconcile(
        uid: str,
        admin_key: Optional[str] = Depends(require_admin),
        service: LedgerService = Depends(get_service),
    ) -> ReconciliationReport:
        return service.reconcile(uid, admin_key)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
