"""Store protocols - write-once metadata and the submission ledger."""

from __future__ import annotations

from typing import Protocol

from seneschal_sponsor.models.commitment import MetadataRecord
from seneschal_sponsor.models.records import ActivityRecord, SubmissionRecord


class MetadataStore(Protocol):
    """Write-once key-value store for on_chain_id -> CID."""

    async def set_if_absent(self, key: str, value: str) -> bool:
        """Atomically create ``key``. Returns False if it already existed."""
        ...

    async def get_metadata(self, key: str) -> MetadataRecord | None:
        ...


class SubmissionLedger(Protocol):
    """Per-payload record of what already happened on-chain."""

    async def get_submission(self, payload_digest: str) -> SubmissionRecord | None:
        ...

    async def record_submission(
        self, payload_digest: str, payload_json: str, tx_hash: str,
    ) -> None:
        ...

    async def record_confirmation(
        self,
        payload_digest: str,
        on_chain_id: str,
        block_number: int,
        block_hash: str,
    ) -> None:
        ...

    async def record_reverted(self, payload_digest: str) -> None:
        ...

    async def record_content(
        self, payload_digest: str, content_cid: str, image_cid: str,
    ) -> None:
        ...


class StateStore(MetadataStore, SubmissionLedger, Protocol):
    """Everything the workflow persists, plus the activity log."""

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    async def log_activity(
        self,
        event_type: str,
        message: str,
        tx_hash: str | None = None,
        on_chain_id: str | None = None,
    ) -> None:
        ...

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        ...
