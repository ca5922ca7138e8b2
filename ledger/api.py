import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, configure_logging
from .errors import ArenaServiceError, StoreUnavailableError
from .firebase_store import FirebaseStore, init_firebase_app
from .models import (
    ActionResponse,
    BalanceResponse,
    ClaimRewardRequest,
    HistoryResponse,
    JoinTournamentRequest,
    RedeemReferralRequest,
    TournamentListResponse,
)
from .service import ArenaService

logger = logging.getLogger(__name__)


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def _build_service() -> Optional[ArenaService]:
    settings = get_settings()
    firebase_app = init_firebase_app(settings)
    if firebase_app is None:
        return None
    return ArenaService(
        FirebaseStore(firebase_app),
        referral_bonus=settings.referral_bonus,
        game_reward=settings.game_reward,
    )


def get_service() -> ArenaService:
    service = _build_service()
    if service is None:
        raise StoreUnavailableError("Database not connected")
    return service


async def arena_error_handler(request: Request, exc: ArenaServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s %s", request.method, request.url.path, exc.message, exc.details)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.code.value)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": "Missing data.", "code": "ERR_INPUT_MISSING"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Server Error", "code": "ERR_INTERNAL"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Diamond Arena API",
        description="Tournaments, rewards and referral bonuses backed by the realtime database",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ArenaServiceError, arena_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "diamond-arena"}

    @app.get("/api/tournaments", response_model=TournamentListResponse, tags=["Tournaments"])
    def list_tournaments(service: ArenaService = Depends(get_service)) -> TournamentListResponse:
        return TournamentListResponse(data=service.list_tournaments())

    @app.post("/api/claim-reward", response_model=ActionResponse,
              response_model_exclude_none=True, tags=["Wallet"])
    def claim_reward(request: ClaimRewardRequest, service: ArenaService = Depends(get_service)) -> ActionResponse:
        amount = service.claim_reward(request.uid)
        return ActionResponse(message="Reward added!", amount=amount)

    @app.post("/api/redeem-referral", response_model=ActionResponse,
              response_model_exclude_none=True, tags=["Referrals"])
    def redeem_referral(request: RedeemReferralRequest, service: ArenaService = Depends(get_service)) -> ActionResponse:
        amount = service.redeem_referral(request.user_id, request.code)
        return ActionResponse(message="Referral successful!", amount=amount)

    @app.post("/api/join-tournament", response_model=ActionResponse,
              response_model_exclude_none=True, tags=["Tournaments"])
    def join_tournament(request: JoinTournamentRequest, service: ArenaService = Depends(get_service)) -> ActionResponse:
        balance = service.join_tournament(request.user_id, request.tournament_id)
        return ActionResponse(message="Joined successfully!", balance=balance)

    @app.get("/api/users/{user_id}/balance", response_model=BalanceResponse, tags=["Wallet"])
    def get_user_balance(user_id: str, service: ArenaService = Depends(get_service)) -> BalanceResponse:
        return BalanceResponse(data=service.get_balance(user_id))

    @app.get("/api/users/{user_id}/history", response_model=HistoryResponse, tags=["Wallet"])
    def get_user_history(
        user_id: str, limit: int = 50, offset: int = 0,
        service: ArenaService = Depends(get_service),
    ) -> HistoryResponse:
        return HistoryResponse(data=service.get_history(user_id, max(limit, 0), max(offset, 0)))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
