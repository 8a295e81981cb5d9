"""
checkbook - Relayer Client

JSON client for the checkbook relayer API (server.py).
"""

import requests
from typing import Any, Dict, Optional

from .check_types import Check, Signature, SignerSet


class RelayerError(Exception):
    """Relayer call failed."""
    def __init__(self, code: int, message: str, kind: str = ""):
        self.code = code
        self.message = message
        self.kind = kind
        super().__init__(f"Relayer Error {code}: {kind + ': ' if kind else ''}{message}")


class RelayerClient:
    """
    Client for a checkbook relayer.

    Usage:
        relayer = RelayerClient("http://localhost:8090")
        account = relayer.derive(signer_set)["account"]
        receipt = relayer.settle(check)
    """

    def __init__(self, url: str = "http://localhost:8090", timeout: int = 30):
        self.url = url.rstrip("/")
        self.timeout = timeout

    def _call(self, method: str, path: str, payload: Optional[dict] = None) -> Any:
        """Make HTTP call; non-2xx responses raise RelayerError."""
        try:
            response = requests.request(
                method,
                f"{self.url}{path}",
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise RelayerError(-1, f"Connection failed: {e}")

        try:
            result = response.json()
        except ValueError:
            raise RelayerError(response.status_code, response.text[:200])

        if response.status_code >= 400:
            raise RelayerError(response.status_code, result.get("message", ""),
                               result.get("error", ""))
        return result

    # ═══════════════════════════════════════════════════════════════════════
    # ENDPOINTS
    # ═══════════════════════════════════════════════════════════════════════

    def status(self) -> dict:
        return self._call("GET", "/api/status")

    def derive(self, signer_set: SignerSet) -> dict:
        """Virtual account of a signer set."""
        return self._call("POST", "/api/accounts/derive", signer_set.to_dict())

    def nonce(self, account: str) -> int:
        return self._call("GET", f"/api/accounts/{account}/nonce")["nonce"]

    def balance(self, token: str, account: str) -> int:
        return int(self._call("GET", f"/api/balances/{token}/{account}")["balance"])

    def settle(self, check: Check) -> dict:
        return self._call("POST", "/api/checks/settle", check.to_dict())

    def merchant(self, merchant_id: str) -> dict:
        return self._call("GET", f"/api/merchants/{merchant_id}")

    def transfer_b2b(self, token: str, sender_merchant: str, sender_order_id: str,
                     recipient_merchant: str, recipient_order_id: str, amount: int,
                     nonce: int, signature: Signature) -> dict:
        payload: Dict[str, Any] = {
            "token": token,
            "sender_merchant": sender_merchant,
            "sender_order_id": sender_order_id,
            "recipient_merchant": recipient_merchant,
            "recipient_order_id": recipient_order_id,
            "amount": str(amount),
            "nonce": nonce,
            "signature": signature.to_dict(),
        }
        return self._call("POST", "/api/merchants/transfer_b2b", payload)

    def transfer_b2c(self, token: str, sender_merchant: str, sender_order_id: str,
                     recipient: str, amount: int, nonce: int,
                     signature: Signature) -> dict:
        payload = {
            "token": token,
            "sender_merchant": sender_merchant,
            "sender_order_id": sender_order_id,
            "recipient": recipient,
            "amount": str(amount),
            "nonce": nonce,
            "signature": signature.to_dict(),
        }
        return self._call("POST", "/api/merchants/transfer_b2c", payload)

    def redeem_to_merchant(self, check: Check, merchant_id: str, order_id: str) -> dict:
        payload = {"check": check.to_dict(), "merchant_id": merchant_id, "order_id": order_id}
        return self._call("POST", "/api/merchants/redeem", payload)
