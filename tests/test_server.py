"""
checkbook Relayer API Tests
"""

from unittest import mock

import pytest
import requests

from checkbook import (
    Nonce, RelayerClient, RelayerError, SignerSet, TRANSFER_B2C, create_check, sign_b2c,
)
from checkbook.server import create_app

from conftest import TOKEN


@pytest.fixture
def client(book):
    app = create_app(book)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def pair(alice, bob):
    return SignerSet((alice.address, bob.address), 2)


class TestRelayerApi:
    """Tests for the Flask relayer endpoints."""

    def test_health(self, client):
        assert client.get("/health").get_json() == {"status": "ok"}

    def test_status(self, client, book):
        data = client.get("/api/status").get_json()
        assert data["wallet_address"] == book.wallet_address
        assert data["policy_mode"] == "positional"

    def test_derive(self, client, book, pair):
        response = client.post("/api/accounts/derive", json=pair.to_dict())
        assert response.status_code == 200
        assert response.get_json()["account"] == book.executor.account_for(pair)

    def test_derive_missing_fields(self, client):
        response = client.post("/api/accounts/derive", json={"signers": []})
        assert response.status_code == 400

    def test_derive_malformed(self, client, alice):
        response = client.post("/api/accounts/derive",
                               json={"signers": [alice.address], "threshold": 0})
        assert response.status_code == 400
        assert response.get_json()["error"] == "ArrayLengthMismatch"

    def test_settle_and_replay(self, client, book, fund, pair, alice, bob, recipient):
        account, setup = fund(pair)
        check = create_check(TOKEN, 25, recipient.address, Nonce(1), pair, setup,
                             [alice.key, bob.key])

        response = client.post("/api/checks/settle", json=check.to_dict())
        assert response.status_code == 200
        receipt = response.get_json()["receipt"]
        assert receipt["account"] == account
        assert receipt["amount"] == "25"

        replay = client.post("/api/checks/settle", json=check.to_dict())
        assert replay.status_code == 409
        assert replay.get_json()["error"] == "StaleNonce"

        nonce = client.get(f"/api/accounts/{account}/nonce").get_json()
        assert nonce["nonce"] == 1
        balance = client.get(f"/api/balances/{TOKEN}/{recipient.address}").get_json()
        assert balance["balance"] == "25"

    def test_settle_bad_json(self, client):
        response = client.post("/api/checks/settle", data="nope", content_type="text/plain")
        assert response.status_code == 400

    def test_merchant_lookup(self, client, book, admin, alice, bob):
        book.registry.register_merchant(admin.address, alice.address, bob.address)
        data = client.get(f"/api/merchants/{alice.address}").get_json()
        assert data["owner"] == bob.address
        assert data["roles"] == {"TRANSFER_B2B": False, "TRANSFER_B2C": False}

    def test_merchant_not_found(self, client, alice):
        assert client.get(f"/api/merchants/{alice.address}").status_code == 404

    def test_b2c_unauthorized(self, client, book, admin, alice, bob, recipient):
        book.registry.register_merchant(admin.address, alice.address, bob.address)
        sig = sign_b2c(bob.key, TOKEN, alice.address, "0x" + "01" * 32, recipient.address, 5, 1)
        response = client.post("/api/merchants/transfer_b2c", json={
            "token": TOKEN, "sender_merchant": alice.address, "sender_order_id": "0x" + "01" * 32,
            "recipient": recipient.address, "amount": "5", "nonce": 1, "signature": sig.to_dict(),
        })
        assert response.status_code == 403
        assert response.get_json()["error"] == "Unauthorized"

    def test_b2c(self, client, book, admin, alice, bob, recipient, funder):
        order = "0x" + "01" * 32
        book.registry.register_merchant(admin.address, alice.address, bob.address)
        book.registry.grant_role(admin.address, TRANSFER_B2C, alice.address)
        account = book.merchants.order_account(alice.address, order)
        book.ledger.mint(TOKEN, funder.address, 10)
        book.ledger.deposit(TOKEN, funder.address, account, 10)
        sig = sign_b2c(bob.key, TOKEN, alice.address, order, recipient.address, 5, 1)
        response = client.post("/api/merchants/transfer_b2c", json={
            "token": TOKEN, "sender_merchant": alice.address, "sender_order_id": order,
            "recipient": recipient.address, "amount": "5", "nonce": 1, "signature": sig.to_hex(),
        })
        assert response.status_code == 200
        assert book.ledger.balance_of(TOKEN, recipient.address) == 5

    def test_events(self, client, book, fund, pair):
        fund(pair)
        events = client.get("/api/events?name=Transfer").get_json()["events"]
        assert len(events) == 2


class TestRelayerClient:
    """Tests for the HTTP client (requests mocked)."""

    @staticmethod
    def _response(status: int, payload: dict):
        response = mock.Mock()
        response.status_code = status
        response.json.return_value = payload
        return response

    def test_nonce(self):
        relayer = RelayerClient("http://relayer:8090/")
        with mock.patch("checkbook.client.requests.request",
                        return_value=self._response(200, {"nonce": 3})) as request:
            assert relayer.nonce("0xabc") == 3
        request.assert_called_once_with("GET", "http://relayer:8090/api/accounts/0xabc/nonce",
                                        json=None, timeout=30)

    def test_settle_posts_check(self, book, fund, pair, alice, bob, recipient):
        _, setup = fund(pair)
        check = create_check(TOKEN, 25, recipient.address, Nonce(1), pair, setup,
                             [alice.key, bob.key])
        relayer = RelayerClient("http://relayer:8090")
        with mock.patch("checkbook.client.requests.request",
                        return_value=self._response(200, {"success": True})) as request:
            relayer.settle(check)
        assert request.call_args.kwargs["json"] == check.to_dict()

    def test_error_kind(self):
        relayer = RelayerClient()
        payload = {"error": "StaleNonce", "message": "nonce 1 for 0x.., expected 2"}
        with mock.patch("checkbook.client.requests.request",
                        return_value=self._response(409, payload)):
            with pytest.raises(RelayerError) as excinfo:
                relayer.nonce("0xabc")
        assert excinfo.value.code == 409
        assert excinfo.value.kind == "StaleNonce"

    def test_connection_error(self):
        relayer = RelayerClient()
        with mock.patch("checkbook.client.requests.request",
                        side_effect=requests.exceptions.ConnectionError("refused")):
            with pytest.raises(RelayerError) as excinfo:
                relayer.status()
        assert excinfo.value.code == -1
