"""Web3 chain client - sends sponsor() transactions and fetches receipts."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception, Web3RPCError

from seneschal_sponsor.errors import ConfirmationTimeout, SubmissionRejected, SubmissionUncertain
from seneschal_sponsor.evm.abi import SENESCHAL_ABI
from seneschal_sponsor.models.records import InclusionReceipt, LogEntry

log = logging.getLogger(__name__)


def _hex(value: Any) -> str:
    """0x-prefixed lowercase hex for HexBytes/bytes/str values."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value)
    return text if text.startswith("0x") else "0x" + text


def receipt_from_web3(raw: Mapping[str, Any]) -> InclusionReceipt:
    """Convert a web3 TxReceipt (AttributeDict) into an InclusionReceipt."""
    logs = tuple(
        LogEntry(
            address=to_checksum_address(entry["address"]),
            topics=tuple(_hex(t) for t in entry.get("topics", ())),
            data=_hex(entry.get("data", b"")),
            log_index=int(entry.get("logIndex", 0)),
        )
        for entry in raw.get("logs", ())
    )
    return InclusionReceipt(
        tx_hash=_hex(raw["transactionHash"]),
        block_number=int(raw["blockNumber"]),
        block_hash=_hex(raw["blockHash"]),
        status=int(raw.get("status", 1)),
        logs=logs,
    )


class Web3ChainClient:
    """ChainClient over an AsyncWeb3 HTTP provider.

    Transactions are built locally, signed with the sponsor's LocalAccount
    and broadcast with eth_sendRawTransaction. Gas estimation doubles as the
    pre-flight check: a contract revert surfaces as SubmissionRejected
    before anything is broadcast.
    """

    def __init__(
        self,
        rpc_url: str,
        chain_id: int,
        account: LocalAccount,
        abi: list[dict] | None = None,
        poll_latency: float = 2.0,
    ) -> None:
        self._w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._chain_id = chain_id
        self._account = account
        self._abi = abi or SENESCHAL_ABI
        self._poll_latency = poll_latency

    async def call(self, address: str, function_name: str, args: Sequence[Any]) -> str:
        contract = self._w3.eth.contract(address=to_checksum_address(address), abi=self._abi)
        fn = getattr(contract.functions, function_name)(*args)
        sender = self._account.address

        try:
            nonce = await self._w3.eth.get_transaction_count(sender, "pending")
            tx = await fn.build_transaction({
                "from": sender,
                "nonce": nonce,
                "chainId": self._chain_id,
            })
        except ContractLogicError as exc:
            log.warning("%s() rejected by contract: %s", function_name, exc)
            raise SubmissionRejected(f"contract reverted: {exc}") from exc
        except (Web3Exception, ValueError) as exc:
            log.error("%s() could not be built: %s", function_name, exc)
            raise SubmissionRejected(f"build failed: {exc}") from exc

        signed = self._account.sign_transaction(tx)
        tx_hex = _hex(signed.hash)
        try:
            await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except (Web3RPCError, ValueError) as exc:
            # The node answered with an error, so it did not take the tx
            log.error("%s() broadcast refused: %s", function_name, exc)
            raise SubmissionRejected(f"broadcast refused: {exc}") from exc
        except Exception as exc:
            log.warning("%s() broadcast of %s ambiguous: %s", function_name, tx_hex[:18], exc)
            raise SubmissionUncertain(tx_hex, str(exc) or type(exc).__name__) from exc

        log.info("%s() broadcast (tx=%s, nonce=%d)", function_name, tx_hex[:18], nonce)
        return tx_hex

    async def wait_for_inclusion(self, tx_hash: str, timeout: float) -> InclusionReceipt:
        try:
            raw = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout, poll_latency=self._poll_latency,
            )
        except TimeExhausted as exc:
            raise ConfirmationTimeout(tx_hash, timeout) from exc
        return receipt_from_web3(raw)

    async def block_number(self) -> int:
        return int(await self._w3.eth.block_number)

    async def close(self) -> None:
        await self._w3.provider.disconnect()
