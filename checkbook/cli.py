#!/usr/bin/env python3
"""
checkbook CLI

Usage:
    checkbook derive --signers 0xA..,0xB.. --threshold 2
    checkbook sign-setup --key <funder key> --signers 0xA..,0xB.. --threshold 2
    checkbook sign-check --token 0xT.. --amount 100 --recipient 0xR.. --nonce 1 \\
        --signers 0xA..,0xB.. --threshold 2 --setup-sig 0x.. --keys <keyA>,<keyB> > check.json
    checkbook settle --check check.json
    checkbook nonce --account 0x..
    checkbook register-merchant --merchant 0xM.. --owner 0xO.. --grant b2b,b2c
    checkbook serve
"""

import argparse
import json
import logging
import sys

from .check_types import Check, Nonce, RedemptionToken, Signature, SignerSet
from .client import RelayerClient, RelayerError
from .config import CONFIG
from .derive import derive
from .engine import Checkbook
from .errors import CheckError
from .issuer import create_check, new_token_id, sign_setup
from .merchant import TRANSFER_B2B, TRANSFER_B2C

ROLES = {"b2b": TRANSFER_B2B, "b2c": TRANSFER_B2C}


def _split(value: str) -> list:
    return [v.strip() for v in value.split(",") if v.strip()] if value else []


def _signer_set(args) -> SignerSet:
    return SignerSet(
        signers=tuple(_split(args.signers)),
        threshold=args.threshold,
        cards=tuple(_split(getattr(args, "cards", ""))),
        card_threshold=getattr(args, "card_threshold", 0) or 0,
    )


def _add_signer_args(parser):
    parser.add_argument("--signers", required=True, help="Comma separated signer addresses (ordered)")
    parser.add_argument("--threshold", type=int, required=True, help="Required signers (m)")
    parser.add_argument("--cards", default="", help="Comma separated card addresses")
    parser.add_argument("--card-threshold", type=int, default=0, help="Required cards")


# ============ COMMANDS ============

def cmd_derive(args):
    """Print the virtual account of a signer set."""
    print(derive(_signer_set(args), CONFIG["wallet_address"]))


def cmd_sign_setup(args):
    """Funder signs the signer set it funds."""
    print(sign_setup(args.key, _signer_set(args)).to_hex())


def cmd_sign_check(args):
    """Build a signed check and print it as JSON."""
    if args.nonce is None and not args.blank:
        print("Error: --nonce or --blank required", file=sys.stderr)
        sys.exit(1)
    replay = Nonce(args.nonce) if args.nonce is not None \
        else RedemptionToken(args.token_id or new_token_id())
    keys = [None if k == "-" else k for k in _split(args.keys)]
    check = create_check(
        token=args.token,
        amount=args.amount,
        recipient=args.recipient,
        replay=replay,
        signer_set=_signer_set(args),
        setup_signature=Signature.from_hex(args.setup_sig),
        signer_keys=keys,
        card_keys=[None if k == "-" else k for k in _split(args.card_keys)],
        data=args.data,
    )
    print(json.dumps(check.to_dict(), indent=2))


def cmd_settle(args):
    """Submit a check (JSON file, or - for stdin) to the relayer."""
    source = sys.stdin if args.check == "-" else open(args.check)
    with source:
        check = Check.from_dict(json.load(source))
    receipt = RelayerClient(CONFIG["relayer_url"]).settle(check)
    print(json.dumps(receipt, indent=2))


def cmd_nonce(args):
    print(RelayerClient(CONFIG["relayer_url"]).nonce(args.account))


def cmd_register_merchant(args):
    """Register a merchant in the local store as the configured admin."""
    admin = CONFIG["admin_address"]
    if not admin:
        print("Error: CHECKBOOK_ADMIN_ADDRESS (or --admin) required", file=sys.stderr)
        sys.exit(1)
    book = Checkbook.from_config()
    merchant = book.registry.register_merchant(admin, args.merchant, args.owner, args.content_hash)
    for role in _split(args.grant):
        book.registry.grant_role(admin, ROLES[role], merchant.merchant_id)
    print(json.dumps(merchant.to_dict(), indent=2))


def cmd_serve(args):
    from .server import main as serve
    serve()


# ============ MAIN ============

def main():
    parser = argparse.ArgumentParser(description="checkbook multi-signature checks")
    parser.add_argument("--store", help="Store file (default: CHECKBOOK_STORE_PATH)")
    parser.add_argument("--wallet", help="Wallet address accounts derive from")
    parser.add_argument("--admin", help="Registry admin address")
    parser.add_argument("--relayer", help="Relayer URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    derive_parser = subparsers.add_parser("derive", help="Derive a virtual account")
    _add_signer_args(derive_parser)

    setup_parser = subparsers.add_parser("sign-setup", help="Sign a signer set as its funder")
    _add_signer_args(setup_parser)
    setup_parser.add_argument("--key", required=True, help="Funder private key")

    check_parser = subparsers.add_parser("sign-check", help="Create a signed check")
    _add_signer_args(check_parser)
    check_parser.add_argument("--token", required=True, help="Token address")
    check_parser.add_argument("--amount", type=int, required=True, help="Amount (base units)")
    check_parser.add_argument("--recipient", required=True, help="Recipient address")
    check_parser.add_argument("--nonce", type=int, help="Account nonce (stored + 1)")
    check_parser.add_argument("--blank", action="store_true", help="Blank check (single-use token)")
    check_parser.add_argument("--token-id", help="Blank check id (default: random)")
    check_parser.add_argument("--setup-sig", required=True, help="Funder setup signature (hex)")
    check_parser.add_argument("--keys", required=True, help="Signer keys in signer order, - skips")
    check_parser.add_argument("--card-keys", default="", help="Card keys in card order, - skips")
    check_parser.add_argument("--data", default="", help="Opaque data carried to the receipt")

    settle_parser = subparsers.add_parser("settle", help="Submit a check to the relayer")
    settle_parser.add_argument("--check", required=True, help="Check JSON file, - for stdin")

    nonce_parser = subparsers.add_parser("nonce", help="Show an account's last nonce")
    nonce_parser.add_argument("--account", required=True, help="Account address")

    merchant_parser = subparsers.add_parser("register-merchant", help="Register a merchant")
    merchant_parser.add_argument("--merchant", required=True, help="Merchant id (address)")
    merchant_parser.add_argument("--owner", required=True, help="Owner address")
    merchant_parser.add_argument("--content-hash", default="0x" + "00" * 32, help="Content hash")
    merchant_parser.add_argument("--grant", default="", help="Roles to grant: b2b,b2c")

    subparsers.add_parser("serve", help="Run the relayer API")

    args = parser.parse_args()

    if args.store:
        CONFIG["store_path"] = args.store
    if args.wallet:
        CONFIG["wallet_address"] = args.wallet
    if args.admin:
        CONFIG["admin_address"] = args.admin
    if args.relayer:
        CONFIG["relayer_url"] = args.relayer
    if args.verbose:
        CONFIG["log_level"] = "DEBUG"
    logging.basicConfig(
        level=getattr(logging, CONFIG["log_level"].upper(), logging.INFO),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    commands = {
        "derive": cmd_derive,
        "sign-setup": cmd_sign_setup,
        "sign-check": cmd_sign_check,
        "settle": cmd_settle,
        "nonce": cmd_nonce,
        "register-merchant": cmd_register_merchant,
        "serve": cmd_serve,
    }
    if args.command not in commands:
        parser.print_help()
        return

    try:
        commands[args.command](args)
    except (CheckError, RelayerError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
