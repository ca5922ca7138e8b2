import itertools

import pytest

from ledger.service import ArenaService
from ledger.store import InMemoryStore


def make_clock(start: int = 1_700_000_000_000):
    counter = itertools.count(start)
    return lambda: next(counter)


def seed_data() -> dict:
    return {
        "users": {
            "u1": {"referCode": "AAA111", "wallet": {"greenDiamondBalance": 100}},
            "u2": {"referCode": "ABC123", "wallet": {"greenDiamondBalance": 0}},
            "u3": {"referCode": "ZZZ999", "referredBy": "u1", "wallet": {"greenDiamondBalance": 5}},
        },
        "tournaments": {
            "t1": {
                "title": "Squad Clash", "prizePool": "500", "entryFee": 50,
                "status": "Open", "map": "Erangel", "schedule": "Sat 8PM",
            },
            "t2": {"gameName": "Solo Rush", "entryFee": "abc"},
            "t3": {"title": "Free Cup", "entryFee": 0, "participants": {"u1": {"joinedAt": 1}}},
        },
    }


@pytest.fixture
def store():
    return InMemoryStore(seed_data(), clock=make_clock())


@pytest.fixture
def service(store):
    return ArenaService(store)


@pytest.fixture
def seed():
    return seed_data()


@pytest.fixture
def clock():
    return make_clock()
