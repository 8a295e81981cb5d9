"""
checkbook - Merchant Registry

Merchant ids -> owner identity + content hash, with role based access
control over who may register merchants and which merchants may transfer.

Components:
  - AccessControl         roles, per-role admin roles, member enumeration
  - MerchantRegistry      admin-managed merchant records (AccessControl)
  - NameRegistry          first-come first-served human readable names
  - MerchantOwner         delegated owner: owner/operator + per-key permissions
  - MerchantOwnerFactory  creates MerchantOwners and binds their names

Usage:
    registry = MerchantRegistry(store, admin=admin_address, events=events)
    registry.register_merchant(admin_address, merchant_id, owner, content_hash)
    registry.grant_role(admin_address, TRANSFER_B2B, merchant_id)
"""

import logging
from typing import Dict, List, Optional

from web3 import Web3

from .check_types import ZERO_BYTES32, Merchant, normalize_address, normalize_bytes32
from .derive import create2_address
from .errors import IdAlreadyTaken, NameAlreadyTaken, Unauthorized
from .events import EventLog
from .store import Store

log = logging.getLogger(__name__)


def role_id(name: str) -> str:
    return "0x" + bytes(Web3.keccak(text=name)).hex()


DEFAULT_ADMIN_ROLE = ZERO_BYTES32
TRANSFER_B2B = role_id("TRANSFER_B2B")
TRANSFER_B2C = role_id("TRANSFER_B2C")

# MerchantOwner permissions
PERMISSION_B2B = role_id("transferB2B")
PERMISSION_B2C = role_id("transferB2C")

ROLE_MEMBERS_NS = "role_members"
ROLE_ADMINS_NS = "role_admins"
MERCHANTS_NS = "merchants"
NAMES_NS = "names"
OWNERS_NS = "merchant_owners"


# ═══════════════════════════════════════════════════════════════════════════
# ACCESS CONTROL
# ═══════════════════════════════════════════════════════════════════════════

class AccessControl:
    """
    Role membership persisted in the store.

    Every role is administered by DEFAULT_ADMIN_ROLE unless set_role_admin()
    says otherwise. Members can not renounce roles, and the default admin
    role can not be revoked.
    """

    def __init__(self, store: Store, events: Optional[EventLog] = None):
        self.store = store
        self.events = events

    def _emit(self, event_name: str, **args):
        if self.events:
            self.events.record(event_name, **args)

    def _members(self, role: str) -> List[str]:
        return self.store.get(ROLE_MEMBERS_NS, role, [])

    def has_role(self, role: str, account: str) -> bool:
        return normalize_address(account) in self._members(normalize_bytes32(role))

    def get_role_admin(self, role: str) -> str:
        return self.store.get(ROLE_ADMINS_NS, normalize_bytes32(role), DEFAULT_ADMIN_ROLE)

    def get_role_member_count(self, role: str) -> int:
        return len(self._members(normalize_bytes32(role)))

    def get_role_member(self, role: str, index: int) -> str:
        return self._members(normalize_bytes32(role))[index]

    def _require_role(self, role: str, caller: str, message: str):
        if not self.has_role(role, caller):
            raise Unauthorized(message)

    def _grant(self, role: str, account: str):
        role, account = normalize_bytes32(role), normalize_address(account)
        members = self._members(role)
        if account in members:
            return
        members.append(account)
        self.store.set(ROLE_MEMBERS_NS, role, members)
        self._emit("RoleGranted", role=role, account=account)

    def grant_role(self, caller: str, role: str, account: str):
        with self.store.transaction():
            self._require_role(self.get_role_admin(role), caller,
                               "sender must be an admin to grant")
            self._grant(role, account)
        log.info(f"Granted {role[:10]} to {account}")

    def revoke_role(self, caller: str, role: str, account: str):
        role = normalize_bytes32(role)
        with self.store.transaction():
            self._require_role(self.get_role_admin(role), caller,
                               "sender must be an admin to revoke")
            if role == DEFAULT_ADMIN_ROLE:
                raise Unauthorized("cannot revoke default admin role")
            members = self._members(role)
            account = normalize_address(account)
            if account in members:
                members.remove(account)
                self.store.set(ROLE_MEMBERS_NS, role, members)
                self._emit("RoleRevoked", role=role, account=account)

    def renounce_role(self, caller: str, role: str):
        raise Unauthorized("renounceRole has been disabled")

    def set_role_admin(self, caller: str, role: str, admin_role: str):
        with self.store.transaction():
            self._require_role(DEFAULT_ADMIN_ROLE, caller, "caller is not admin")
            self.store.set(ROLE_ADMINS_NS, normalize_bytes32(role), normalize_bytes32(admin_role))
            self._emit("RoleAdminChanged", role=normalize_bytes32(role),
                       admin_role=normalize_bytes32(admin_role))


# ═══════════════════════════════════════════════════════════════════════════
# MERCHANT REGISTRY
# ═══════════════════════════════════════════════════════════════════════════

class MerchantRegistry(AccessControl):
    """Admin-managed merchant records."""

    def __init__(self, store: Store, admin: Optional[str] = None,
                 events: Optional[EventLog] = None):
        super().__init__(store, events)
        if admin and self.get_role_member_count(DEFAULT_ADMIN_ROLE) == 0:
            self._grant(DEFAULT_ADMIN_ROLE, admin)

    def get_merchant(self, merchant_id: str) -> Optional[Merchant]:
        data = self.store.get(MERCHANTS_NS, normalize_address(merchant_id))
        return Merchant.from_dict(data) if data else None

    def owner_of(self, merchant_id: str) -> Optional[str]:
        merchant = self.get_merchant(merchant_id)
        return merchant.owner if merchant else None

    def content_hash(self, merchant_id: str) -> Optional[str]:
        merchant = self.get_merchant(merchant_id)
        return merchant.content_hash if merchant else None

    def register_merchant(self, caller: str, merchant_id: str, owner: str,
                          content_hash: str = ZERO_BYTES32) -> Merchant:
        """
        Bind a new merchant id to its owner.

        Raises:
            Unauthorized: caller is not a default admin
            IdAlreadyTaken: merchant id already registered
        """
        merchant_id = normalize_address(merchant_id)
        with self.store.transaction():
            self._require_role(DEFAULT_ADMIN_ROLE, caller, "caller is not admin")
            if self.store.contains(MERCHANTS_NS, merchant_id):
                raise IdAlreadyTaken(f"merchant {merchant_id} already registered")
            return self._write(merchant_id, owner, content_hash)

    def set_merchant(self, caller: str, merchant_id: str, owner: str,
                     content_hash: str = ZERO_BYTES32) -> Merchant:
        """Create or update a merchant record (admin only)."""
        with self.store.transaction():
            self._require_role(DEFAULT_ADMIN_ROLE, caller, "caller is not admin")
            return self._write(normalize_address(merchant_id), owner, content_hash)

    def _write(self, merchant_id: str, owner: str, content_hash: str) -> Merchant:
        merchant = Merchant(merchant_id=merchant_id, owner=normalize_address(owner),
                            content_hash=normalize_bytes32(content_hash))
        self.store.set(MERCHANTS_NS, merchant_id, merchant.to_dict())
        self._emit("MerchantChanged", **merchant.to_dict())
        log.info(f"Merchant {merchant_id} owner={merchant.owner}")
        return merchant


# ═══════════════════════════════════════════════════════════════════════════
# NAMES
# ═══════════════════════════════════════════════════════════════════════════

def namehash(name: str) -> str:
    """ENS namehash of a dotted name."""
    node = bytes(32)
    if name:
        for label in reversed(name.split(".")):
            node = bytes(Web3.keccak(node + bytes(Web3.keccak(text=label))))
    return "0x" + node.hex()


class NameRegistry:
    """First-come first-served names under one root (default "merchant")."""

    def __init__(self, store: Store, root: str = "merchant",
                 events: Optional[EventLog] = None):
        self.store = store
        self.root = root
        self.events = events

    def full_name(self, label: str) -> str:
        return f"{label}.{self.root}"

    def owner(self, name: str) -> Optional[str]:
        entry = self.store.get(NAMES_NS, namehash(name))
        return entry["owner"] if entry else None

    def register(self, label: str, owner: str) -> str:
        """
        Claim `label` for `owner`. Re-registering by the current owner is a
        no-op.

        Raises:
            NameAlreadyTaken: label held by another owner
        """
        if not label or "." in label:
            raise NameAlreadyTaken(f"invalid label: {label!r}")
        name = self.full_name(label)
        owner = normalize_address(owner)
        with self.store.transaction():
            current = self.owner(name)
            if current is not None and current != owner:
                raise NameAlreadyTaken(f"{name} is owned by {current}")
            self.store.set(NAMES_NS, namehash(name), {"name": name, "owner": owner})
            if self.events and current is None:
                self.events.record("NameRegistered", name=name, node=namehash(name), owner=owner)
        return name


# ═══════════════════════════════════════════════════════════════════════════
# DELEGATED OWNERS
# ═══════════════════════════════════════════════════════════════════════════

OWNER_INIT_CODE_HASH = bytes(Web3.keccak(text="checkbook.MerchantOwner.v1"))


class MerchantOwner:
    """
    Delegated owner of a merchant.

    The owner and operator hold every permission and may grant permissions
    to other keys, so a merchant can sign transfers with keys it never
    registered with the admin.
    """

    def __init__(self, store: Store, address: str):
        self.store = store
        self.address = normalize_address(address)
        if not store.contains(OWNERS_NS, self.address):
            raise Unauthorized(f"{self.address} is not a merchant owner")

    @classmethod
    def is_owner_contract(cls, store: Store, address: str) -> bool:
        return store.contains(OWNERS_NS, normalize_address(address))

    @property
    def _record(self) -> Dict:
        return self.store.get(OWNERS_NS, self.address)

    @property
    def owner(self) -> str:
        return self._record["owner"]

    @property
    def operator(self) -> str:
        return self._record["operator"]

    @property
    def merchant_id(self) -> str:
        return self._record["merchant_id"]

    @property
    def name(self) -> str:
        return self._record.get("name", "")

    def has_permission(self, permission: str, key: str) -> bool:
        key = normalize_address(key)
        record = self._record
        if key in (record["owner"], record["operator"]):
            return True
        return key in record["permissions"].get(normalize_bytes32(permission), [])

    def _set_permission(self, caller: str, permission: str, key: str, granted: bool):
        record = self._record
        if normalize_address(caller) not in (record["owner"], record["operator"]):
            raise Unauthorized("caller is not owner or operator")
        permission, key = normalize_bytes32(permission), normalize_address(key)
        holders = record["permissions"].setdefault(permission, [])
        if granted and key not in holders:
            holders.append(key)
        elif not granted and key in holders:
            holders.remove(key)
        self.store.set(OWNERS_NS, self.address, record)

    def grant_permission(self, caller: str, permission: str, key: str):
        self._set_permission(caller, permission, key, True)

    def revoke_permission(self, caller: str, permission: str, key: str):
        self._set_permission(caller, permission, key, False)


class MerchantOwnerFactory:
    """Creates MerchantOwners at deterministic addresses and names them."""

    def __init__(self, store: Store, names: NameRegistry, factory_address: str,
                 events: Optional[EventLog] = None):
        self.store = store
        self.names = names
        self.factory_address = normalize_address(factory_address)
        self.events = events

    def owner_address(self, owner: str, operator: str, merchant_id: str) -> str:
        salt = bytes(Web3.solidity_keccak(
            ["address", "address", "address"],
            [normalize_address(owner), normalize_address(operator), normalize_address(merchant_id)],
        ))
        return create2_address(self.factory_address, salt, OWNER_INIT_CODE_HASH)

    def deploy(self, owner: str, operator: str, merchant_id: str, label: str = "") -> MerchantOwner:
        """
        Create a MerchantOwner and, if `label` is given, bind `label.merchant`
        to it.

        Raises:
            IdAlreadyTaken: an owner for this (owner, operator, merchant) exists
            NameAlreadyTaken: label already claimed
        """
        address = self.owner_address(owner, operator, merchant_id)
        with self.store.transaction():
            if self.store.contains(OWNERS_NS, address):
                raise IdAlreadyTaken(f"merchant owner {address} already deployed")
            name = self.names.register(label, address) if label else ""
            self.store.set(OWNERS_NS, address, {
                "owner": normalize_address(owner),
                "operator": normalize_address(operator),
                "merchant_id": normalize_address(merchant_id),
                "name": name,
                "permissions": {},
            })
            if self.events:
                self.events.record("MerchantOwnerDeployed", address=address,
                                   merchant_id=normalize_address(merchant_id), name=name)
        log.info(f"Deployed merchant owner {address} for {merchant_id} ({name or 'unnamed'})")
        return MerchantOwner(self.store, address)
