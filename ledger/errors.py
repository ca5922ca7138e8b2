from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    ERR_INTERNAL = "ERR_INTERNAL"
    ERR_INPUT_MISSING = "ERR_INPUT_MISSING"
    ERR_USER_NOT_FOUND = "ERR_USER_NOT_FOUND"
    ERR_TOURNAMENT_NOT_FOUND = "ERR_TOURNAMENT_NOT_FOUND"
    ERR_INVALID_CODE = "ERR_INVALID_CODE"
    ERR_ALREADY_REDEEMED = "ERR_ALREADY_REDEEMED"
    ERR_ALREADY_JOINED = "ERR_ALREADY_JOINED"
    ERR_SELF_REFERRAL = "ERR_SELF_REFERRAL"
    ERR_INSUFFICIENT_FUNDS = "ERR_INSUFFICIENT_FUNDS"
    ERR_STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"
    ERR_STORE_TIMEOUT = "ERR_STORE_TIMEOUT"


class ArenaServiceError(Exception):
    """Base exception for every error surfaced through the HTTP envelope.

    Attributes:
        code: ErrorCode enum
        message: human message returned to the client
        details: optional structured data, for logs only
    """

    status_code: int = 500
    default_code: ErrorCode = ErrorCode.ERR_INTERNAL
    default_message: str = "Server Error"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "message": self.message, "code": self.code.value}


class ValidationError(ArenaServiceError):
    status_code = 400
    default_code = ErrorCode.ERR_INPUT_MISSING
    default_message = "Missing data."


class NotFoundError(ArenaServiceError):
    status_code = 404
    default_message = "Not found."


class UserNotFoundError(NotFoundError):
    default_code = ErrorCode.ERR_USER_NOT_FOUND
    default_message = "User not found."


class TournamentNotFoundError(NotFoundError):
    default_code = ErrorCode.ERR_TOURNAMENT_NOT_FOUND
    default_message = "Tournament not found"


class InvalidCodeError(NotFoundError):
    default_code = ErrorCode.ERR_INVALID_CODE
    default_message = "Invalid code."


class ConflictError(ArenaServiceError):
    status_code = 409


class AlreadyRedeemedError(ConflictError):
    default_code = ErrorCode.ERR_ALREADY_REDEEMED
    default_message = "Already referred."


class AlreadyJoinedError(ConflictError):
    # The mobile client expects 400 here, not 409.
    status_code = 400
    default_code = ErrorCode.ERR_ALREADY_JOINED
    default_message = "Already joined!"


class SelfReferralError(ConflictError):
    status_code = 400
    default_code = ErrorCode.ERR_SELF_REFERRAL
    default_message = "Cannot use own code."


class InsufficientFundsError(ArenaServiceError):
    status_code = 400
    default_code = ErrorCode.ERR_INSUFFICIENT_FUNDS
    default_message = "Insufficient Balance"


class StoreUnavailableError(ArenaServiceError):
    status_code = 500
    default_code = ErrorCode.ERR_STORE_UNAVAILABLE
    default_message = "Server Error"


class StoreTimeoutError(StoreUnavailableError):
    status_code = 504
    default_code = ErrorCode.ERR_STORE_TIMEOUT
    default_message = "Database timeout"
