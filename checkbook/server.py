#!/usr/bin/env python3
"""
checkbook Relayer Server - REST API for check settlement

Endpoints:
  GET  /health                          - Liveness
  GET  /api/status                      - Wallet, policy mode, counters
  POST /api/accounts/derive             - Virtual account of a signer set
  GET  /api/accounts/<account>/nonce    - Last accepted nonce
  GET  /api/balances/<token>/<account>  - Ledger balance
  POST /api/checks/settle               - Settle a signed check
  GET  /api/merchants/<id>              - Merchant record and roles
  POST /api/merchants/transfer_b2b      - Merchant -> merchant transfer
  POST /api/merchants/transfer_b2c      - Merchant -> consumer transfer
  POST /api/merchants/redeem            - Consumer blank check -> merchant order
  GET  /api/events                      - Event log (optional ?name=)
"""

import logging
import time
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from .check_types import Check, Signature, SignerSet, normalize_address
from .config import CONFIG
from .engine import Checkbook
from .errors import CheckError
from .merchant import TRANSFER_B2B, TRANSFER_B2C
from .merchant_wallet import MerchantWallet

log = logging.getLogger(__name__)


def _require(data: Optional[dict], *fields: str):
    """Return an error response for missing fields, else None."""
    if not isinstance(data, dict):
        return jsonify({"error": "BadRequest", "message": "JSON body required"}), 400
    missing = [f for f in fields if f not in data]
    if missing:
        return jsonify({"error": "BadRequest", "message": f"missing fields: {', '.join(missing)}"}), 400
    return None


def create_app(book: Checkbook) -> Flask:
    app = Flask(__name__)
    CORS(app)
    started_ts = int(time.time())

    @app.errorhandler(CheckError)
    def handle_check_error(e: CheckError):
        return jsonify(e.to_dict()), e.http_status

    @app.errorhandler(ValueError)
    def handle_value_error(e: ValueError):
        return jsonify({"error": "BadRequest", "message": str(e)}), 400

    @app.route('/health')
    def health():
        return jsonify({"status": "ok"})

    @app.route('/api/status')
    def status():
        return jsonify({
            "wallet_address": book.wallet_address,
            "policy_mode": book.policy.mode.value,
            "uptime": int(time.time()) - started_ts,
            "events": len(book.events.list()),
        })

    # =========================================================================
    # ACCOUNTS & CHECKS
    # =========================================================================

    @app.route('/api/accounts/derive', methods=['POST'])
    def derive_account():
        data = request.get_json(silent=True)
        error = _require(data, "signers", "threshold")
        if error:
            return error
        signer_set = SignerSet.from_dict(data)
        return jsonify({
            "account": book.executor.account_for(signer_set),
            "signer_set": signer_set.to_dict(),
        })

    @app.route('/api/accounts/<account>/nonce')
    def get_nonce(account):
        account = normalize_address(account)
        return jsonify({"account": account, "nonce": book.executor.nonces.current(account)})

    @app.route('/api/balances/<token>/<account>')
    def get_balance(token, account):
        return jsonify({
            "token": normalize_address(token),
            "account": normalize_address(account),
            "balance": str(book.ledger.balance_of(normalize_address(token), normalize_address(account))),
        })

    @app.route('/api/checks/settle', methods=['POST'])
    def settle_check():
        data = request.get_json(silent=True)
        error = _require(data, "token", "amount", "recipient", "replay",
                         "signer_set", "setup_signature", "signatures")
        if error:
            return error
        receipt = book.executor.settle(Check.from_dict(data))
        return jsonify({"success": True, "receipt": receipt.to_dict()})

    # =========================================================================
    # MERCHANTS
    # =========================================================================

    @app.route('/api/merchants/<merchant_id>')
    def get_merchant(merchant_id):
        merchant = book.registry.get_merchant(merchant_id)
        if merchant is None:
            return jsonify({"error": "NotFound", "message": f"merchant {merchant_id} not registered"}), 404
        result = merchant.to_dict()
        result["roles"] = {
            "TRANSFER_B2B": book.registry.has_role(TRANSFER_B2B, merchant.merchant_id),
            "TRANSFER_B2C": book.registry.has_role(TRANSFER_B2C, merchant.merchant_id),
        }
        return jsonify(result)

    @app.route('/api/merchants/transfer_b2b', methods=['POST'])
    def transfer_b2b():
        data = request.get_json(silent=True)
        error = _require(data, "token", "sender_merchant", "sender_order_id",
                         "recipient_merchant", "recipient_order_id", "amount",
                         "nonce", "signature")
        if error:
            return error
        wallet: MerchantWallet = book.merchants
        receipt = wallet.transfer_b2b(
            data["token"], data["sender_merchant"], data["sender_order_id"],
            data["recipient_merchant"], data["recipient_order_id"],
            int(data["amount"]), int(data["nonce"]), Signature.from_dict(data["signature"]))
        return jsonify({"success": True, "receipt": receipt.to_dict()})

    @app.route('/api/merchants/transfer_b2c', methods=['POST'])
    def transfer_b2c():
        data = request.get_json(silent=True)
        error = _require(data, "token", "sender_merchant", "sender_order_id",
                         "recipient", "amount", "nonce", "signature")
        if error:
            return error
        receipt = book.merchants.transfer_b2c(
            data["token"], data["sender_merchant"], data["sender_order_id"],
            data["recipient"], int(data["amount"]), int(data["nonce"]),
            Signature.from_dict(data["signature"]))
        return jsonify({"success": True, "receipt": receipt.to_dict()})

    @app.route('/api/merchants/redeem', methods=['POST'])
    def redeem_to_merchant():
        data = request.get_json(silent=True)
        error = _require(data, "check", "merchant_id", "order_id")
        if error:
            return error
        receipt = book.merchants.redeem_blank_check_to_merchant(
            Check.from_dict(data["check"]), data["merchant_id"], data["order_id"])
        return jsonify({"success": True, "receipt": receipt.to_dict()})

    @app.route('/api/events')
    def list_events():
        name = request.args.get("name")
        return jsonify({"events": [e.to_dict() for e in book.events.list(name)]})

    return app


def main():
    logging.basicConfig(
        level=getattr(logging, CONFIG["log_level"].upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )
    book = Checkbook.from_config()
    app = create_app(book)
    log.info(f"Relayer listening on {CONFIG['http_host']}:{CONFIG['http_port']}")
    app.run(host=CONFIG["http_host"], port=CONFIG["http_port"])


if __name__ == '__main__':
    main()
