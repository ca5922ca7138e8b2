"""
Unit Tests for Referral Redemption

Tests cover:
1. Successful redemption (both wallets, both history records)
2. One redemption per user
3. Self-referral rejection
4. Unknown users and codes
5. Referral index lookups, scan fallback and backfill
6. Partial failure bookkeeping
"""

import pytest

from ledger.errors import (
    AlreadyRedeemedError,
    InvalidCodeError,
    SelfReferralError,
    StoreUnavailableError,
    UserNotFoundError,
    ValidationError,
)
from ledger.journal import OperationStatus
from ledger.models import HistoryType
from ledger.referral_index import ReferralIndex
from ledger.service import ArenaService
from ledger.store import InMemoryStore


def only_operation(store) -> dict:
    operations = store.get("operations")
    assert len(operations) == 1
    return next(iter(operations.values()))


class TestRedeemReferral:
    """Tests for the redemption flow."""

    def test_redeem_success(self, service, store):
        """Test that both parties get the bonus and a history record."""
        amount = service.redeem_referral("u2", "AAA111")

        assert amount == 100
        assert service.wallets.balance("u2") == 100
        assert service.wallets.balance("u1") == 200
        assert store.get("users/u2/referredBy") == "u1"

        joined = service.ledger.history("u2")
        assert len(joined) == 1
        assert joined[0].amount == 100
        assert joined[0].type == HistoryType.REWARD
        assert joined[0].method == "Referral Bonus (Joined)"
        assert joined[0].transaction_id == "u1"

        invited = service.ledger.history("u1")
        assert len(invited) == 1
        assert invited[0].method == "Referral Bonus (Invite)"
        assert invited[0].transaction_id == "u2"

    def test_redeem_completes_journal(self, service, store):
        """Test that the intent record ends completed with every step flagged."""
        service.redeem_referral("u2", "AAA111")

        op = only_operation(store)
        assert op["kind"] == "referral"
        assert op["status"] == OperationStatus.COMPLETED
        assert op["referrerId"] == "u1"
        assert set(op["steps"]) == {"referredBy", "creditUser", "creditReferrer", "history"}

    def test_configured_bonus(self, store):
        """Test that the bonus amount comes from configuration."""
        service = ArenaService(store, referral_bonus=50)

        assert service.redeem_referral("u2", "AAA111") == 50
        assert service.wallets.balance("u1") == 150

    def test_second_redeem_rejected(self, service):
        """Test that a user can only be referred once."""
        service.redeem_referral("u2", "AAA111")

        with pytest.raises(AlreadyRedeemedError):
            service.redeem_referral("u2", "ZZZ999")

        # Exactly one bonus in total
        assert service.wallets.balance("u2") == 100
        assert len(service.ledger.history("u2")) == 1
        assert service.wallets.balance("u3") == 5

    def test_already_referred_user_rejected(self, service):
        """Test that a pre-existing referredBy blocks redemption."""
        with pytest.raises(AlreadyRedeemedError):
            service.redeem_referral("u3", "AAA111")

        assert service.wallets.balance("u1") == 100

    def test_self_referral_rejected(self, service, store):
        """Test that a user's own code is refused."""
        with pytest.raises(SelfReferralError):
            service.redeem_referral("u2", "ABC123")

        assert service.wallets.balance("u2") == 0
        assert store.get("users/u2/referredBy") is None

    def test_already_redeemed_checked_before_own_code(self, service):
        """Test that a referred user entering their own code gets AlreadyRedeemed."""
        with pytest.raises(AlreadyRedeemedError):
            service.redeem_referral("u3", "ZZZ999")

        assert service.wallets.balance("u3") == 5

    def test_stale_index_entry_pointing_at_caller_is_ignored(self, service, store):
        """Test that an old code left in the index does not resolve to its former owner."""
        store.set("referCodes/OLDCODE", "u2")

        with pytest.raises(InvalidCodeError):
            service.redeem_referral("u2", "OLDCODE")

        assert store.get("referCodes/OLDCODE") is None

    def test_reassigned_code_pays_new_owner(self, service, store):
        """Test that a code moved to another user after indexing pays the new owner."""
        service.referrals.backfill()
        store.set("users/u1/referCode", "AAA222")
        store.set("users/u4", {"referCode": "AAA111", "wallet": {"greenDiamondBalance": 0}})

        service.redeem_referral("u2", "AAA111")

        assert store.get("users/u2/referredBy") == "u4"
        assert service.wallets.balance("u4") == 100
        assert service.wallets.balance("u1") == 100
        assert store.get("referCodes/AAA111") == "u4"

    def test_unknown_user(self, service):
        with pytest.raises(UserNotFoundError):
            service.redeem_referral("ghost", "AAA111")

    def test_invalid_code(self, service, store):
        """Test that an unknown code changes nothing."""
        with pytest.raises(InvalidCodeError):
            service.redeem_referral("u2", "NOPE00")

        assert service.wallets.balance("u2") == 0
        assert store.get("operations") is None

    @pytest.mark.parametrize("user_id,code", [("", "AAA111"), ("u2", ""), (None, None)])
    def test_missing_data(self, service, user_id, code):
        with pytest.raises(ValidationError):
            service.redeem_referral(user_id, code)

    def test_concurrent_redeem_pays_once(self, seed, clock):
        """Test that a referredBy written by a parallel request stops this one."""

        class RacingStore(InMemoryStore):
            def conditional_update(self, path, update_fn):
                if path.endswith("/referredBy"):
                    # The other request commits first.
                    self.set(path, "u3")
                return super().conditional_update(path, update_fn)

        store = RacingStore(seed, clock=clock)
        service = ArenaService(store)

        with pytest.raises(AlreadyRedeemedError):
            service.redeem_referral("u2", "AAA111")

        assert service.wallets.balance("u2") == 0
        assert service.wallets.balance("u1") == 100
        assert only_operation(store)["status"] == OperationStatus.FAILED

    def test_partial_failure_is_recorded(self, seed, clock):
        """Test that a failed history write leaves a failed journal entry."""

        class NoHistoryStore(InMemoryStore):
            def append_child(self, path, value, key_field=None):
                if path.startswith("walletHistory/"):
                    raise StoreUnavailableError()
                return super().append_child(path, value, key_field)

        store = NoHistoryStore(seed, clock=clock)
        service = ArenaService(store)

        with pytest.raises(StoreUnavailableError):
            service.redeem_referral("u2", "AAA111")

        # Wallet writes are not rolled back; the journal says how far it got.
        assert service.wallets.balance("u2") == 100
        assert service.wallets.balance("u1") == 200
        op = only_operation(store)
        assert op["status"] == OperationStatus.FAILED
        assert set(op["steps"]) == {"referredBy", "creditUser", "creditReferrer"}


class TestReferralIndex:
    """Tests for the refer code index."""

    def test_lookup_uses_index(self, store):
        store.set("users/u1/referCode", "PROMO1")
        store.set("referCodes/PROMO1", "u1")

        def no_scan(path, child, value):
            raise AssertionError("index hit should not scan")

        store.query_equal = no_scan

        assert ReferralIndex(store).lookup("PROMO1") == "u1"

    def test_stale_entry_falls_back_to_scan(self, store):
        store.set("referCodes/ABC123", "u1")

        assert ReferralIndex(store).lookup("ABC123") == "u2"
        assert store.get("referCodes/ABC123") == "u2"

    def test_lookup_scan_fallback_repairs_index(self, store):
        index = ReferralIndex(store)

        assert index.lookup("ABC123") == "u2"
        assert store.get("referCodes/ABC123") == "u2"

    def test_lookup_unknown(self, store):
        assert ReferralIndex(store).lookup("MISSING") is None

    def test_unindexable_code_scans_only(self, store):
        store.set("users/u4", {"referCode": "a.b", "wallet": {"greenDiamondBalance": 0}})
        index = ReferralIndex(store)

        assert index.lookup("a.b") == "u4"
        assert store.get("referCodes") is None

    def test_register_rejects_bad_key(self, store):
        with pytest.raises(ValueError):
            ReferralIndex(store).register("u1", "bad/code")

    def test_backfill(self, store):
        store.set("users/u5", {"wallet": {"greenDiamondBalance": 0}})

        indexed = ReferralIndex(store).backfill()

        assert indexed == 3
        assert store.get("referCodes") == {"AAA111": "u1", "ABC123": "u2", "ZZZ999": "u3"}

    def test_redeem_through_backfilled_index(self, service, store):
        service.referrals.backfill()

        service.redeem_referral("u2", "AAA111")

        assert store.get("users/u2/referredBy") == "u1"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
