"""
ERC-20 transfer executor.

One call to transfer() performs exactly one on-chain transfer attempt:

1. read decimals() from the token contract
2. scale the human amount into base units
3. check the faucet's own token balance
4. build, sign and broadcast transfer(to, amount)
5. wait (bounded) for the receipt

IMPORTANT:
- Nothing here retries. A failure after broadcast is ambiguous and is
  surfaced with the tx hash attached so it can be reconciled by hand.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from eth_account import Account
from eth_utils import encode_hex, to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import (
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    Web3RPCError,
)

from shared.logging.logger import get_logger
from services.faucet.errors import (
    ConfirmationTimeout,
    InsufficientFunds,
    NetworkError,
    TransferError,
    UnknownTransferError,
)
from services.faucet.models import TransferResult

log = get_logger("faucet.transfer")

ERC20_ABI = [
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

_NETWORK_ERRORS = (ProviderConnectionError, OSError, asyncio.TimeoutError)

_INSUFFICIENT_MARKERS = (
    "insufficient funds",
    "insufficient balance",
    "exceeds balance",
    "erc20insufficientbalance",
)

# Node refusals that still leave this tx (or one with its nonce) in flight.
_MAYBE_PENDING_MARKERS = (
    "already known",
    "known transaction",
    "already imported",
    "nonce too low",
    "replacement transaction underpriced",
)


def to_base_units(human_amount: str, decimals: int) -> int:
    """
    "500" with 18 decimals -> 500 * 10**18.

    Raises ValueError if the amount has more fractional digits than the
    token supports.
    """
    try:
        value = Decimal(human_amount)
    except InvalidOperation:
        raise ValueError(f"not a decimal amount: {human_amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(
            f"{human_amount} has more than {decimals} decimal places"
        )
    return int(scaled)


def _matches(exc: Exception, markers) -> bool:
    text = str(exc).lower()
    return any(marker in text for marker in markers)


def _looks_insufficient(exc: Exception) -> bool:
    return _matches(exc, _INSUFFICIENT_MARKERS)


class TransferExecutor:
    """
    Signs with the faucet's own key and sends one token transfer per call.
    """

    def __init__(
        self,
        *,
        rpc_url: str,
        token_address: str,
        private_key: str,
        confirmation_timeout: float = 120.0,
        w3: Optional[AsyncWeb3] = None,
    ):
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._account = Account.from_key(private_key)
        self._token = self._w3.eth.contract(
            address=to_checksum_address(token_address),
            abi=ERC20_ABI,
        )
        self._timeout = confirmation_timeout

    @classmethod
    def from_config(cls, config) -> "TransferExecutor":
        return cls(
            rpc_url=config.rpc_url,
            token_address=config.token_address,
            private_key=config.private_key,
            confirmation_timeout=config.confirmation_timeout,
        )

    @property
    def signer_address(self) -> str:
        return self._account.address

    # ------------------------------------------------------------------
    # Chain access (one RPC concern each)
    # ------------------------------------------------------------------

    async def _fetch_decimals(self) -> int:
        return int(await self._token.functions.decimals().call())

    async def _fetch_balance(self) -> int:
        return int(
            await self._token.functions.balanceOf(self._account.address).call()
        )

    async def _build_transaction(self, destination: str, amount: int) -> Dict[str, Any]:
        nonce = await self._w3.eth.get_transaction_count(
            self._account.address, "pending"
        )
        return await self._token.functions.transfer(
            to_checksum_address(destination), amount
        ).build_transaction(
            {
                "from": self._account.address,
                "nonce": nonce,
            }
        )

    async def _broadcast(self, raw_transaction: bytes) -> None:
        await self._w3.eth.send_raw_transaction(raw_transaction)

    async def _await_confirmation(self, tx_hash: str) -> Dict[str, Any]:
        return await self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self._timeout
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def transfer(self, destination: str, human_amount: str) -> TransferResult:
        """
        Send `human_amount` tokens to `destination` and wait for the receipt.

        Raises NetworkError, InsufficientFunds, ConfirmationTimeout or
        UnknownTransferError.
        """

        # --------------------------------------------------
        # Pre-broadcast: nothing has left the process yet
        # --------------------------------------------------
        try:
            decimals = await self._fetch_decimals()
            amount = to_base_units(human_amount, decimals)

            balance = await self._fetch_balance()
            if balance < amount:
                raise InsufficientFunds(
                    f"Faucet balance {balance} < requested {amount} base units"
                )

            tx = await self._build_transaction(destination, amount)
            signed = self._account.sign_transaction(tx)
        except TransferError:
            raise
        except _NETWORK_ERRORS as e:
            raise NetworkError(f"RPC unreachable: {e}") from e
        except (ContractLogicError, Web3RPCError) as e:
            if _looks_insufficient(e):
                raise InsufficientFunds(str(e)) from e
            raise UnknownTransferError(f"Transfer rejected: {e}") from e
        except Exception as e:
            raise UnknownTransferError(f"Transfer preparation failed: {e}") from e

        tx_hash = encode_hex(signed.hash)
        log.info(
            f"Broadcasting transfer {human_amount} -> {destination} "
            f"(base_units={amount}, tx={tx_hash})"
        )

        # --------------------------------------------------
        # Broadcast: a failure here may or may not have reached the node
        # --------------------------------------------------
        try:
            await self._broadcast(signed.raw_transaction)
        except _NETWORK_ERRORS as e:
            raise NetworkError(f"Broadcast failed: {e}", tx_hash=tx_hash) from e
        except Web3RPCError as e:
            if _matches(e, _MAYBE_PENDING_MARKERS):
                raise UnknownTransferError(
                    f"Broadcast refused, tx may still be pending: {e}",
                    tx_hash=tx_hash,
                ) from e
            # Any other refusal means nothing is pending.
            if _looks_insufficient(e):
                raise InsufficientFunds(str(e)) from e
            raise UnknownTransferError(f"Broadcast rejected: {e}") from e
        except Exception as e:
            raise UnknownTransferError(
                f"Broadcast failed: {e}", tx_hash=tx_hash
            ) from e

        # --------------------------------------------------
        # Confirmation
        # --------------------------------------------------
        try:
            receipt = await self._await_confirmation(tx_hash)
        except TimeExhausted as e:
            raise ConfirmationTimeout(tx_hash, self._timeout) from e
        except _NETWORK_ERRORS as e:
            raise NetworkError(
                f"Lost RPC while awaiting confirmation: {e}", tx_hash=tx_hash
            ) from e
        except Exception as e:
            raise UnknownTransferError(
                f"Confirmation failed: {e}", tx_hash=tx_hash
            ) from e

        if receipt.get("status") != 1:
            # Mined and reverted: final, nothing was transferred.
            raise UnknownTransferError(f"Transfer {tx_hash} reverted on-chain")

        block_number = receipt.get("blockNumber")
        log.info(f"Transfer {tx_hash} confirmed in block {block_number}")
        return TransferResult(tx_id=tx_hash, success=True, block_number=block_number)

    async def close(self) -> None:
        disconnect = getattr(self._w3.provider, "disconnect", None)
        if disconnect is None:
            return
        try:
            await disconnect()
        except Exception as e:
            log.warning(f"RPC provider close error ignored: {e}")
