"""
checkbook - Engine

Wires store, ledger, executor, merchant registry and merchant wallet
together. Server and CLI both go through Checkbook.
"""

import logging
from typing import Optional

from .config import CONFIG
from .events import EventLog
from .executor import TransferExecutor
from .ledger import TokenLedger
from .merchant import MerchantOwnerFactory, MerchantRegistry, NameRegistry
from .merchant_wallet import MerchantWallet
from .policy import PolicyMode, ThresholdPolicyEngine
from .store import Store

log = logging.getLogger(__name__)


class Checkbook:
    """
    Usage:
        book = Checkbook.from_config()
        book.ledger.deposit(token, funder, account, 100)
        receipt = book.executor.settle(check)
    """

    def __init__(self, store: Store, wallet_address: str,
                 admin_address: Optional[str] = None,
                 factory_address: str = CONFIG["factory_address"],
                 policy_mode: PolicyMode = PolicyMode.POSITIONAL,
                 name_root: str = "merchant"):
        self.store = store
        self.events = EventLog(store)
        self.ledger = TokenLedger(store, self.events)
        self.policy = ThresholdPolicyEngine(mode=policy_mode)
        self.executor = TransferExecutor(store, self.ledger, wallet_address,
                                         policy=self.policy, events=self.events)
        self.registry = MerchantRegistry(store, admin=admin_address or None, events=self.events)
        self.names = NameRegistry(store, root=name_root, events=self.events)
        self.factory = MerchantOwnerFactory(store, self.names, factory_address, events=self.events)
        self.merchants = MerchantWallet(self.executor, self.registry)

    @classmethod
    def from_config(cls, config: Optional[dict] = None) -> "Checkbook":
        config = config or CONFIG
        book = cls(
            store=Store(config["store_path"]),
            wallet_address=config["wallet_address"],
            admin_address=config.get("admin_address"),
            factory_address=config.get("factory_address", CONFIG["factory_address"]),
            policy_mode=PolicyMode(config.get("policy_mode", "positional")),
            name_root=config.get("name_root", "merchant"),
        )
        log.info(f"Checkbook wallet={book.executor.wallet_address} store={config['store_path']}")
        return book

    @property
    def wallet_address(self) -> str:
        return self.executor.wallet_address
