"""
checkbook Test Fixtures
"""

import pytest
from eth_account import Account

from checkbook import Checkbook, SignerSet, Store, sign_setup

TOKEN = "0x00000000000000000000000000000000000070c3"
WALLET = "0x000000000000000000000000000000000000c4ec"
FACTORY = "0x000000000000000000000000000000000000fac7"


def make_key(index: int):
    """Deterministic test account #index."""
    return Account.from_key("0x" + f"{index + 1:064x}")


@pytest.fixture
def alice():
    return make_key(1)


@pytest.fixture
def bob():
    return make_key(2)


@pytest.fixture
def carol():
    return make_key(3)


@pytest.fixture
def funder():
    return make_key(10)


@pytest.fixture
def recipient():
    return make_key(11)


@pytest.fixture
def admin():
    return make_key(20)


@pytest.fixture
def card1():
    return make_key(30)


@pytest.fixture
def card2():
    return make_key(31)


@pytest.fixture
def store() -> Store:
    """Memory-only store."""
    return Store()


@pytest.fixture
def book(store, admin) -> Checkbook:
    return Checkbook(store, WALLET, admin_address=admin.address, factory_address=FACTORY)


@pytest.fixture
def fund(book, funder):
    """Fund the account of a signer set; returns (account, setup signature)."""
    def _fund(signer_set: SignerSet, amount: int = 1000):
        account = book.executor.account_for(signer_set)
        book.ledger.mint(TOKEN, funder.address, amount)
        book.ledger.deposit(TOKEN, funder.address, account, amount)
        return account, sign_setup(funder.key, signer_set)
    return _fund
