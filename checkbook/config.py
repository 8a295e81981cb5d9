"""
checkbook - Configuration

Settings come from the environment; the CLI overrides them from flags.
"""

import os

CONFIG = {
    # State
    "store_path": os.environ.get("CHECKBOOK_STORE_PATH", "~/.checkbook/state.json"),

    # Identities
    "wallet_address": os.environ.get(
        "CHECKBOOK_WALLET_ADDRESS", "0x000000000000000000000000000000000000c4ec"),
    "admin_address": os.environ.get("CHECKBOOK_ADMIN_ADDRESS", ""),
    "factory_address": os.environ.get(
        "CHECKBOOK_FACTORY_ADDRESS", "0x000000000000000000000000000000000000fac7"),
    "name_root": os.environ.get("CHECKBOOK_NAME_ROOT", "merchant"),

    # Policy: "positional" or "unordered"
    "policy_mode": os.environ.get("CHECKBOOK_POLICY_MODE", "positional"),

    # Relayer HTTP
    "http_host": os.environ.get("CHECKBOOK_HTTP_HOST", "0.0.0.0"),
    "http_port": int(os.environ.get("CHECKBOOK_HTTP_PORT", "8090")),
    "relayer_url": os.environ.get("CHECKBOOK_RELAYER_URL", "http://localhost:8090"),

    "log_level": os.environ.get("CHECKBOOK_LOG_LEVEL", "INFO"),
}
