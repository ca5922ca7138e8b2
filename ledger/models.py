from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HistoryType(str, Enum):
    REWARD = "Reward"
    DEBIT = "Debit"


class HistoryStatus(str, Enum):
    APPROVED = "approved"


class StoreModel(BaseModel):
    """Base for documents kept in the store with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_store(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Wallet(StoreModel):
    green_diamond_balance: int = 0


class User(StoreModel):
    id: str
    refer_code: Optional[str] = None
    referred_by: Optional[str] = None
    wallet: Wallet = Field(default_factory=Wallet)


class HistoryRecord(StoreModel):
    id: str
    user_id: str
    amount: int
    method: str
    type: HistoryType
    status: HistoryStatus = HistoryStatus.APPROVED
    transaction_id: str = ""
    timestamp: Optional[int] = None


class TournamentSummary(StoreModel):
    id: str
    title: str
    prize: Any = "0"
    entry_fee: int = 0
    status: str = "Upcoming"
    map: str = ""
    schedule: str = ""


# Request bodies. Fields are optional so a missing one maps to a 400 envelope
# instead of FastAPI's 422.

class ClaimRewardRequest(BaseModel):
    uid: Optional[str] = None


class RedeemReferralRequest(StoreModel):
    code: Optional[str] = None
    user_id: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={"example": {"code": "ABC123", "userId": "u2"}},
    )


class JoinTournamentRequest(StoreModel):
    user_id: Optional[str] = None
    tournament_id: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={"example": {"userId": "u1", "tournamentId": "t1"}},
    )


class ActionResponse(BaseModel):
    success: bool = True
    message: str
    amount: Optional[int] = None
    balance: Optional[int] = None


class TournamentListResponse(BaseModel):
    success: bool = True
    data: list[TournamentSummary]


class WalletBalance(StoreModel):
    user_id: str
    green_diamond_balance: int


class BalanceResponse(BaseModel):
    success: bool = True
    data: WalletBalance


class HistoryPage(StoreModel):
    user_id: str
    entries: list[HistoryRecord]
    total_count: int


class HistoryResponse(BaseModel):
    success: bool = True
    data: HistoryPage
