"""
checkbook Merchant Tests
"""

import pytest

from checkbook import (
    DEFAULT_ADMIN_ROLE, PERMISSION_B2C, TRANSFER_B2B, TRANSFER_B2C, IdAlreadyTaken,
    InsufficientBalance, NameAlreadyTaken, RedemptionToken, SignerMismatch, SignerSet,
    StaleNonce, Unauthorized, create_check, new_token_id, sign_b2b, sign_b2c,
)
from checkbook.merchant import namehash

from conftest import TOKEN, make_key

ORDER_1 = "0x" + "01" * 32
ORDER_2 = "0x" + "02" * 32


@pytest.fixture
def shop():
    return make_key(40)


@pytest.fixture
def shop_owner():
    return make_key(41)


@pytest.fixture
def supplier():
    return make_key(42)


@pytest.fixture
def supplier_owner():
    return make_key(43)


@pytest.fixture
def merchants(book, admin, shop, shop_owner, supplier, supplier_owner):
    """Two registered merchants; only the shop may transfer."""
    registry = book.registry
    registry.register_merchant(admin.address, shop.address, shop_owner.address)
    registry.register_merchant(admin.address, supplier.address, supplier_owner.address)
    registry.grant_role(admin.address, TRANSFER_B2B, shop.address)
    registry.grant_role(admin.address, TRANSFER_B2C, shop.address)
    return book.merchants


@pytest.fixture
def funded_order(book, merchants, shop, funder):
    """Shop order 1 holds 1000."""
    account = merchants.order_account(shop.address, ORDER_1)
    book.ledger.mint(TOKEN, funder.address, 1000)
    book.ledger.deposit(TOKEN, funder.address, account, 1000)
    return account


class TestAccessControl:
    """Tests for roles and admin gating."""

    def test_admin_granted_at_creation(self, book, admin):
        assert book.registry.has_role(DEFAULT_ADMIN_ROLE, admin.address)
        assert book.registry.get_role_member_count(DEFAULT_ADMIN_ROLE) == 1
        assert book.registry.get_role_member(DEFAULT_ADMIN_ROLE, 0) == admin.address

    def test_register_requires_admin(self, book, shop, shop_owner):
        with pytest.raises(Unauthorized):
            book.registry.register_merchant(shop_owner.address, shop.address, shop_owner.address)

    def test_register_twice(self, book, admin, shop, shop_owner):
        book.registry.register_merchant(admin.address, shop.address, shop_owner.address)
        with pytest.raises(IdAlreadyTaken):
            book.registry.register_merchant(admin.address, shop.address, admin.address)
        assert book.registry.owner_of(shop.address) == shop_owner.address

    def test_set_merchant_updates(self, book, admin, shop, shop_owner, supplier_owner):
        content = "0x" + "cd" * 32
        book.registry.register_merchant(admin.address, shop.address, shop_owner.address)
        book.registry.set_merchant(admin.address, shop.address, supplier_owner.address, content)
        assert book.registry.owner_of(shop.address) == supplier_owner.address
        assert book.registry.content_hash(shop.address) == content
        assert len(book.events.list("MerchantChanged")) == 2

    def test_grant_requires_role_admin(self, book, shop, shop_owner):
        with pytest.raises(Unauthorized):
            book.registry.grant_role(shop_owner.address, TRANSFER_B2B, shop.address)
        assert not book.registry.has_role(TRANSFER_B2B, shop.address)

    def test_revoke(self, book, admin, shop):
        book.registry.grant_role(admin.address, TRANSFER_B2B, shop.address)
        book.registry.revoke_role(admin.address, TRANSFER_B2B, shop.address)
        assert not book.registry.has_role(TRANSFER_B2B, shop.address)

    def test_default_admin_not_revocable(self, book, admin):
        with pytest.raises(Unauthorized):
            book.registry.revoke_role(admin.address, DEFAULT_ADMIN_ROLE, admin.address)

    def test_renounce_disabled(self, book, admin):
        with pytest.raises(Unauthorized):
            book.registry.renounce_role(admin.address, DEFAULT_ADMIN_ROLE)

    def test_role_admin_delegation(self, book, admin, shop, carol):
        """Members of a role's admin role may grant it."""
        manager_role = "0x" + "11" * 32
        book.registry.set_role_admin(admin.address, TRANSFER_B2B, manager_role)
        book.registry.grant_role(admin.address, manager_role, carol.address)
        book.registry.grant_role(carol.address, TRANSFER_B2B, shop.address)
        assert book.registry.has_role(TRANSFER_B2B, shop.address)
        assert book.registry.get_role_admin(TRANSFER_B2B) == manager_role


class TestNames:
    """First-come first-served names."""

    def test_register_and_resolve(self, book, shop):
        name = book.names.register("coffee", shop.address)
        assert name == "coffee.merchant"
        assert book.names.owner("coffee.merchant") == shop.address

    def test_name_taken(self, book, shop, supplier):
        book.names.register("coffee", shop.address)
        with pytest.raises(NameAlreadyTaken):
            book.names.register("coffee", supplier.address)

    def test_same_owner_reregisters(self, book, shop):
        book.names.register("coffee", shop.address)
        assert book.names.register("coffee", shop.address) == "coffee.merchant"

    def test_namehash_known_vector(self):
        assert namehash("") == "0x" + "00" * 32
        assert namehash("eth") == \
            "0x93cdeb708b7545dc668eb9280176169d1c33cfd8ed6f04690a0bcc88a93fc4ae"


class TestMerchantTransfers:
    """Role-gated B2B / B2C / C2B transfers."""

    def test_b2b_moves_exact_amount(self, book, merchants, funded_order, shop, shop_owner, supplier):
        nonce = merchants.next_nonce(shop.address, ORDER_1)
        sig = sign_b2b(shop_owner.key, TOKEN, shop.address, ORDER_1, supplier.address, ORDER_2, 250, nonce)
        receipt = merchants.transfer_b2b(TOKEN, shop.address, ORDER_1, supplier.address, ORDER_2,
                                         250, nonce, sig)
        supplier_account = merchants.order_account(supplier.address, ORDER_2)
        assert receipt.recipient == supplier_account
        assert book.ledger.balance_of(TOKEN, supplier_account) == 250
        assert book.ledger.balance_of(TOKEN, funded_order) == 750
        assert len(book.events.list("TransferB2B")) == 1

    def test_b2b_without_role(self, book, merchants, supplier, supplier_owner, shop):
        account = merchants.order_account(supplier.address, ORDER_1)
        sig = sign_b2b(supplier_owner.key, TOKEN, supplier.address, ORDER_1, shop.address, ORDER_2, 1, 1)
        with pytest.raises(Unauthorized):
            merchants.transfer_b2b(TOKEN, supplier.address, ORDER_1, shop.address, ORDER_2, 1, 1, sig)
        assert book.ledger.balance_of(TOKEN, account) == 0

    def test_b2b_replay(self, merchants, funded_order, shop, shop_owner, supplier):
        sig = sign_b2b(shop_owner.key, TOKEN, shop.address, ORDER_1, supplier.address, ORDER_2, 10, 1)
        merchants.transfer_b2b(TOKEN, shop.address, ORDER_1, supplier.address, ORDER_2, 10, 1, sig)
        with pytest.raises(StaleNonce):
            merchants.transfer_b2b(TOKEN, shop.address, ORDER_1, supplier.address, ORDER_2, 10, 1, sig)

    def test_b2b_wrong_signer(self, merchants, funded_order, shop, supplier, supplier_owner):
        sig = sign_b2b(supplier_owner.key, TOKEN, shop.address, ORDER_1, supplier.address, ORDER_2, 10, 1)
        with pytest.raises(SignerMismatch):
            merchants.transfer_b2b(TOKEN, shop.address, ORDER_1, supplier.address, ORDER_2, 10, 1, sig)

    def test_b2b_unregistered_recipient(self, merchants, funded_order, shop, shop_owner, carol):
        sig = sign_b2b(shop_owner.key, TOKEN, shop.address, ORDER_1, carol.address, ORDER_2, 10, 1)
        with pytest.raises(Unauthorized):
            merchants.transfer_b2b(TOKEN, shop.address, ORDER_1, carol.address, ORDER_2, 10, 1, sig)
        assert merchants.next_nonce(shop.address, ORDER_1) == 1

    def test_b2c(self, book, merchants, funded_order, shop, shop_owner, recipient):
        sig = sign_b2c(shop_owner.key, TOKEN, shop.address, ORDER_1, recipient.address, 40, 1)
        merchants.transfer_b2c(TOKEN, shop.address, ORDER_1, recipient.address, 40, 1, sig)
        assert book.ledger.balance_of(TOKEN, recipient.address) == 40
        assert len(book.events.list("TransferB2C")) == 1

    def test_b2c_without_role(self, book, admin, merchants, funded_order, shop, shop_owner, recipient):
        book.registry.revoke_role(admin.address, TRANSFER_B2C, shop.address)
        sig = sign_b2c(shop_owner.key, TOKEN, shop.address, ORDER_1, recipient.address, 40, 1)
        with pytest.raises(Unauthorized):
            merchants.transfer_b2c(TOKEN, shop.address, ORDER_1, recipient.address, 40, 1, sig)

    def test_redeem_blank_check_to_merchant(self, book, fund, merchants, shop, alice):
        consumer = SignerSet((alice.address,), 1)
        _, setup = fund(consumer, 100)
        order_account = merchants.order_account(shop.address, ORDER_1)
        check = create_check(TOKEN, 60, order_account, RedemptionToken(new_token_id()),
                             consumer, setup, [alice.key])
        merchants.redeem_blank_check_to_merchant(check, shop.address, ORDER_1)
        assert book.ledger.balance_of(TOKEN, order_account) == 60
        assert book.events.list("TransferC2B")[0].args["recipient_merchant"] == shop.address

    def test_redeem_to_wrong_order(self, fund, merchants, shop, alice):
        consumer = SignerSet((alice.address,), 1)
        _, setup = fund(consumer, 100)
        order_account = merchants.order_account(shop.address, ORDER_1)
        check = create_check(TOKEN, 60, order_account, RedemptionToken(new_token_id()),
                             consumer, setup, [alice.key])
        with pytest.raises(SignerMismatch):
            merchants.redeem_blank_check_to_merchant(check, shop.address, ORDER_2)


class TestOrderAccounts:
    """Order accounts belong to the merchant id, not to its owner."""

    def test_merchants_sharing_owner_are_isolated(self, book, admin, shop, supplier,
                                                  shop_owner, funder, recipient):
        registry = book.registry
        registry.register_merchant(admin.address, shop.address, shop_owner.address)
        registry.register_merchant(admin.address, supplier.address, shop_owner.address)
        registry.grant_role(admin.address, TRANSFER_B2C, supplier.address)
        shop_account = book.merchants.order_account(shop.address, ORDER_1)
        assert shop_account != book.merchants.order_account(supplier.address, ORDER_1)

        book.ledger.mint(TOKEN, funder.address, 100)
        book.ledger.deposit(TOKEN, funder.address, shop_account, 100)
        sig = sign_b2c(shop_owner.key, TOKEN, supplier.address, ORDER_1, recipient.address, 100, 1)
        with pytest.raises(InsufficientBalance):
            book.merchants.transfer_b2c(TOKEN, supplier.address, ORDER_1, recipient.address,
                                        100, 1, sig)
        assert book.ledger.balance_of(TOKEN, shop_account) == 100
        assert book.ledger.balance_of(TOKEN, recipient.address) == 0

    def test_owner_change_keeps_accounts(self, book, admin, merchants, funded_order, shop,
                                         shop_owner, supplier_owner, recipient):
        book.registry.set_merchant(admin.address, shop.address, supplier_owner.address)
        assert merchants.order_account(shop.address, ORDER_1) == funded_order
        assert book.ledger.balance_of(TOKEN, funded_order) == 1000

        stale = sign_b2c(shop_owner.key, TOKEN, shop.address, ORDER_1, recipient.address, 40, 1)
        with pytest.raises(SignerMismatch):
            merchants.transfer_b2c(TOKEN, shop.address, ORDER_1, recipient.address, 40, 1, stale)

        sig = sign_b2c(supplier_owner.key, TOKEN, shop.address, ORDER_1, recipient.address, 40, 1)
        merchants.transfer_b2c(TOKEN, shop.address, ORDER_1, recipient.address, 40, 1, sig)
        assert book.ledger.balance_of(TOKEN, funded_order) == 960
        assert book.ledger.balance_of(TOKEN, recipient.address) == 40


class TestDelegatedOwners:
    """MerchantOwner permissions and names."""

    @pytest.fixture
    def owner_contract(self, book, admin, shop, shop_owner, carol):
        contract = book.factory.deploy(shop_owner.address, carol.address, shop.address, "coffee")
        book.registry.register_merchant(admin.address, shop.address, contract.address)
        book.registry.grant_role(admin.address, TRANSFER_B2C, shop.address)
        return contract

    def test_deploy_binds_name(self, book, owner_contract):
        assert owner_contract.name == "coffee.merchant"
        assert book.names.owner("coffee.merchant") == owner_contract.address
        assert len(book.events.list("MerchantOwnerDeployed")) == 1

    def test_deploy_name_taken(self, book, owner_contract, supplier, supplier_owner, carol):
        with pytest.raises(NameAlreadyTaken):
            book.factory.deploy(supplier_owner.address, carol.address, supplier.address, "coffee")

    def test_deploy_twice(self, book, owner_contract, shop, shop_owner, carol):
        with pytest.raises(IdAlreadyTaken):
            book.factory.deploy(shop_owner.address, carol.address, shop.address)

    def test_operator_signs(self, book, owner_contract, shop, carol, recipient, funder):
        account = book.merchants.order_account(shop.address, ORDER_1)
        book.ledger.mint(TOKEN, funder.address, 100)
        book.ledger.deposit(TOKEN, funder.address, account, 100)
        sig = sign_b2c(carol.key, TOKEN, shop.address, ORDER_1, recipient.address, 30, 1)
        book.merchants.transfer_b2c(TOKEN, shop.address, ORDER_1, recipient.address, 30, 1, sig)
        assert book.ledger.balance_of(TOKEN, recipient.address) == 30

    def test_delegate_needs_permission(self, book, owner_contract, shop, shop_owner, recipient, funder):
        delegate = make_key(50)
        account = book.merchants.order_account(shop.address, ORDER_1)
        book.ledger.mint(TOKEN, funder.address, 100)
        book.ledger.deposit(TOKEN, funder.address, account, 100)
        sig = sign_b2c(delegate.key, TOKEN, shop.address, ORDER_1, recipient.address, 30, 1)
        with pytest.raises(Unauthorized):
            book.merchants.transfer_b2c(TOKEN, shop.address, ORDER_1, recipient.address, 30, 1, sig)

        owner_contract.grant_permission(shop_owner.address, PERMISSION_B2C, delegate.address)
        book.merchants.transfer_b2c(TOKEN, shop.address, ORDER_1, recipient.address, 30, 1, sig)
        assert book.ledger.balance_of(TOKEN, recipient.address) == 30

    def test_only_owner_or_operator_grants(self, owner_contract, recipient):
        with pytest.raises(Unauthorized):
            owner_contract.grant_permission(recipient.address, PERMISSION_B2C, recipient.address)
