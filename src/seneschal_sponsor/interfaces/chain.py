"""ChainClient protocol - state-changing contract calls and receipts."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from seneschal_sponsor.models.records import InclusionReceipt


class ChainClient(Protocol):
    """Sends contract transactions and waits for their inclusion."""

    async def call(self, address: str, function_name: str, args: Sequence[Any]) -> str:
        """Build, sign and broadcast a call. Returns the transaction hash.

        Raises SubmissionRejected if the node or contract refuses it, and
        SubmissionUncertain (with the signed hash) when the broadcast itself
        failed in a way that leaves the outcome unknown.
        """
        ...

    async def wait_for_inclusion(self, tx_hash: str, timeout: float) -> InclusionReceipt:
        """Wait until the transaction is mined. Raises ConfirmationTimeout."""
        ...

    async def block_number(self) -> int:
        """Current head block number."""
        ...
