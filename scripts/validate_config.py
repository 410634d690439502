"""
Configuration validation script.

Checks the faucet's environment (after merging .env) without starting
the runtime or touching the network.

Usage:
    python -m scripts.validate_config

Exit status is 0 when the configuration is usable, 1 otherwise.
"""

from __future__ import annotations

import sys

from dotenv import load_dotenv

from shared.config.faucet import load_faucet_config
from services.faucet.errors import ConfigInvalid, ConfigMissing


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


def main() -> int:
    load_dotenv()

    try:
        config = load_faucet_config()
    except ConfigMissing as e:
        for key in e.keys:
            _error(f"{key} is required")
        return 1
    except ConfigInvalid as e:
        _error(str(e))
        return 1

    print(
        "[CONFIG OK] "
        f"amount={config.amount} {config.token_symbol}, "
        f"cooldown={config.cooldown_hours:g}h, "
        f"key_mode={config.claim_key_mode}, "
        f"ledger={config.ledger_path}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
