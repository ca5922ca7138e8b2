import logging
from typing import Any, Optional

from .errors import (
    AlreadyJoinedError,
    AlreadyRedeemedError,
    ArenaServiceError,
    InsufficientFundsError,
    InvalidCodeError,
    SelfReferralError,
    TournamentNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from .journal import OperationJournal
from .models import (
    HistoryPage,
    HistoryRecord,
    HistoryStatus,
    HistoryType,
    TournamentSummary,
    User,
    Wallet,
    WalletBalance,
)
from .referral_index import ReferralIndex
from .store import SERVER_TIMESTAMP, DocumentStore

logger = logging.getLogger(__name__)

REFERRAL_BONUS = 100
GAME_REWARD = 10

METHOD_GAME_REWARD = "Game Zone Win"
METHOD_REFERRAL_JOINED = "Referral Bonus (Joined)"
METHOD_REFERRAL_INVITE = "Referral Bonus (Invite)"
METHOD_ENTRY_FEE = "Tournament Entry Fee"


def coerce_int(value: Any) -> int:
    """Lenient integer parsing for numbers typed into the console by hand.

    Anything missing, malformed or negative becomes 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if not isinstance(value, (int, float, str)):
        return 0
    try:
        number = int(float(value.strip())) if isinstance(value, str) else int(value)
    except (ValueError, OverflowError):
        return 0
    return max(number, 0)


def balance_path(user_id: str) -> str:
    return f"users/{user_id}/wallet/greenDiamondBalance"


def history_path(user_id: str) -> str:
    return f"walletHistory/{user_id}"


def tournament_key_order(key: str):
    """Sort key matching the database's key order: integer keys numerically, then strings."""
    if key.isdigit():
        return (0, int(key), "")
    return (1, 0, key)


class LedgerWriter:
    """Appends immutable wallet history records."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def record(
        self,
        user_id: str,
        amount: int,
        method: str,
        type: HistoryType,
        status: HistoryStatus = HistoryStatus.APPROVED,
        transaction_id: str = "",
    ) -> str:
        entry = {
            "amount": amount,
            "method": method,
            "status": HistoryStatus(status).value,
            "timestamp": SERVER_TIMESTAMP,
            "transactionId": transaction_id,
            "type": HistoryType(type).value,
            "userId": user_id,
        }
        return self.store.append_child(history_path(user_id), entry, key_field="id")

    def history(self, user_id: str) -> list[HistoryRecord]:
        raw = self.store.get(history_path(user_id)) or {}
        records = [
            HistoryRecord.model_validate({"id": key, **data})
            for key, data in raw.items()
            if isinstance(data, dict)
        ]
        records.sort(key=lambda r: (r.timestamp or 0, r.id), reverse=True)
        return records


class WalletMutator:
    """The only code that changes greenDiamondBalance."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def credit(self, user_id: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Credit amount must not be negative")
        self.store.increment(balance_path(user_id), amount)

    def debit(self, user_id: str, amount: int) -> int:
        """Subtract ``amount`` unless that would take the balance below zero.

        Returns the committed balance. Raises InsufficientFundsError without
        writing anything when the balance is too low.
        """
        if amount < 0:
            raise ValueError("Debit amount must not be negative")

        def apply(current):
            balance = coerce_int(current)
            if balance < amount:
                raise InsufficientFundsError(details={"balance": balance, "required": amount})
            return balance - amount

        return self.store.conditional_update(balance_path(user_id), apply)

    def balance(self, user_id: str) -> int:
        return coerce_int(self.store.get(balance_path(user_id)))


class ArenaService:
    def __init__(
        self,
        store: DocumentStore,
        referral_bonus: int = REFERRAL_BONUS,
        game_reward: int = GAME_REWARD,
    ):
        self.store = store
        self.referral_bonus = referral_bonus
        self.game_reward = game_reward
        self.ledger = LedgerWriter(store)
        self.wallets = WalletMutator(store)
        self.referrals = ReferralIndex(store)
        self.journal = OperationJournal(store)

    def list_tournaments(self) -> list[TournamentSummary]:
        raw = self.store.get("tournaments") or {}
        if isinstance(raw, list):
            # Mostly-integer keys come back as a JSON array with gaps as None.
            raw = {str(i): data for i, data in enumerate(raw)}
        tournaments = []
        for key in sorted(raw, key=tournament_key_order):
            data = raw[key]
            if not isinstance(data, dict):
                continue
            tournaments.append(TournamentSummary(
                id=key,
                title=data.get("title") or data.get("gameName") or "Tournament Match",
                prize=data.get("prizePool") or data.get("prize") or "0",
                entry_fee=coerce_int(data.get("entryFee")),
                status=data.get("status") or "Upcoming",
                map=data.get("map") or "",
                schedule=data.get("schedule") or "",
            ))
        # Push keys sort chronologically; newest first.
        tournaments.reverse()
        return tournaments

    def claim_reward(self, user_id: Optional[str]) -> int:
        if not user_id:
            raise ValidationError("User ID missing!")

        self.wallets.credit(user_id, self.game_reward)
        try:
            self.ledger.record(user_id, self.game_reward, METHOD_GAME_REWARD, HistoryType.REWARD)
        except ArenaServiceError:
            logger.error("Credited %s diamonds to %s but history write failed", self.game_reward, user_id)
            raise
        logger.info("Reward of %s claimed by %s", self.game_reward, user_id)
        return self.game_reward

    def get_user(self, user_id: str) -> Optional[User]:
        data = self.store.get(f"users/{user_id}")
        if not isinstance(data, dict):
            return None
        wallet = data.get("wallet") if isinstance(data.get("wallet"), dict) else {}
        return User(
            id=user_id,
            refer_code=str(data["referCode"]) if data.get("referCode") is not None else None,
            referred_by=str(data["referredBy"]) if data.get("referredBy") else None,
            wallet=Wallet(green_diamond_balance=coerce_int(wallet.get("greenDiamondBalance"))),
        )

    def redeem_referral(self, user_id: Optional[str], code: Optional[str]) -> int:
        if not user_id or not code:
            raise ValidationError("Missing data.")

        user = self.get_user(user_id)
        if user is None:
            raise UserNotFoundError()
        if user.referred_by:
            raise AlreadyRedeemedError()
        if user.refer_code == code:
            raise SelfReferralError()

        referrer_id = self.referrals.lookup(code)
        if referrer_id is None:
            raise InvalidCodeError()

        op_id = self.journal.begin("referral", user_id, referrerId=referrer_id, code=code)
        try:
            self._claim_referrer(user_id, referrer_id)
            self.journal.step(op_id, "referredBy")

            self.wallets.credit(user_id, self.referral_bonus)
            self.journal.step(op_id, "creditUser")

            self.wallets.credit(referrer_id, self.referral_bonus)
            self.journal.step(op_id, "creditReferrer")

            self.ledger.record(
                user_id, self.referral_bonus, METHOD_REFERRAL_JOINED, HistoryType.REWARD,
                transaction_id=referrer_id,
            )
            self.ledger.record(
                referrer_id, self.referral_bonus, METHOD_REFERRAL_INVITE, HistoryType.REWARD,
                transaction_id=user_id,
            )
            self.journal.step(op_id, "history")
        except AlreadyRedeemedError:
            self.journal.fail(op_id, "already redeemed")
            raise
        except ArenaServiceError as e:
            logger.error("Referral %s for %s stopped part-way: %s", op_id, user_id, e)
            self.journal.fail(op_id, str(e))
            raise

        self.journal.complete(op_id)
        logger.info("User %s redeemed code %s from %s", user_id, code, referrer_id)
        return self.referral_bonus

    def _claim_referrer(self, user_id: str, referrer_id: str) -> None:
        def claim(current):
            if current:
                raise AlreadyRedeemedError()
            return referrer_id

        self.store.conditional_update(f"users/{user_id}/referredBy", claim)

    def join_tournament(self, user_id: Optional[str], tournament_id: Optional[str]) -> int:
        if not user_id or not tournament_id:
            raise ValidationError("Missing Data")

        tournament = self.store.get(f"tournaments/{tournament_id}")
        if not isinstance(tournament, dict):
            raise TournamentNotFoundError()

        participants = tournament.get("participants") or {}
        if isinstance(participants, dict) and participants.get(user_id):
            raise AlreadyJoinedError()

        entry_fee = coerce_int(tournament.get("entryFee"))

        op_id = self.journal.begin("join", user_id, tournamentId=tournament_id, entryFee=entry_fee)
        try:
            new_balance = self.wallets.debit(user_id, entry_fee)
        except ArenaServiceError as e:
            self.journal.fail(op_id, str(e))
            raise

        try:
            self.journal.step(op_id, "debit")
            self._claim_seat(tournament_id, user_id)
        except ArenaServiceError as e:
            self._refund(op_id, user_id, entry_fee)
            self.journal.fail(op_id, str(e))
            raise

        try:
            self.journal.step(op_id, "participant")
            self.ledger.record(
                user_id, entry_fee, METHOD_ENTRY_FEE, HistoryType.DEBIT,
                transaction_id=tournament_id,
            )
            self.journal.step(op_id, "history")
        except ArenaServiceError as e:
            logger.error("User %s joined %s but the debit history write failed", user_id, tournament_id)
            self.journal.fail(op_id, str(e))
            raise
        self.journal.complete(op_id)

        logger.info("User %s joined %s for %s diamonds", user_id, tournament_id, entry_fee)
        return new_balance

    def _claim_seat(self, tournament_id: str, user_id: str) -> None:
        def claim(current):
            if current:
                raise AlreadyJoinedError()
            return {"joinedAt": SERVER_TIMESTAMP}

        self.store.conditional_update(f"tournaments/{tournament_id}/participants/{user_id}", claim)

    def _refund(self, op_id: str, user_id: str, amount: int) -> None:
        if amount == 0:
            return
        try:
            self.wallets.credit(user_id, amount)
        except ArenaServiceError as e:
            logger.error("Refund of %s to %s for operation %s failed: %s", amount, user_id, op_id, e)
            return
        logger.warning("Refunded %s diamonds to %s for operation %s", amount, user_id, op_id)
        try:
            self.journal.step(op_id, "refund")
        except ArenaServiceError as e:
            logger.error("Could not record refund on operation %s: %s", op_id, e)

    def get_balance(self, user_id: str) -> WalletBalance:
        return WalletBalance(user_id=user_id, green_diamond_balance=self.wallets.balance(user_id))

    def get_history(self, user_id: str, limit: int = 50, offset: int = 0) -> HistoryPage:
        records = self.ledger.history(user_id)
        return HistoryPage(
            user_id=user_id,
            entries=records[offset:offset + limit],
            total_count=len(records),
        )
