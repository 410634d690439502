"""
Faucet core package.

Components (leaves first):
- ledger       → flat-file cooldown ledger
- eligibility  → cooldown decision (pure)
- address      → EVM address syntax
- transfer     → single ERC-20 transfer per claim
- orchestrator → claim flow, error mapping, serialization

IMPORTANT:
- Importing this package MUST NOT open network connections
- Importing this package MUST NOT touch the ledger file
"""
