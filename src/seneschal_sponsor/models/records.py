"""Chain receipts and internal records for state persistence."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LogEntry:
    """One event log from a transaction receipt."""

    address: str
    topics: tuple[str, ...]  # 0x-hex, topic 0 is the event signature
    data: str = "0x"
    log_index: int = 0


@dataclass(frozen=True)
class InclusionReceipt:
    """A transaction receipt as returned by the chain client."""

    tx_hash: str
    block_number: int
    block_hash: str
    status: int  # 1 success, 0 reverted
    logs: tuple[LogEntry, ...] = field(default_factory=tuple)


@dataclass
class SubmissionRecord:
    """Ledger row for one payload digest, as persisted in the state store."""

    payload_digest: str
    payload_json: str
    tx_hash: str | None = None
    status: str = "submitted"  # submitted | confirmed | reverted
    on_chain_id: str | None = None
    block_number: int | None = None
    block_hash: str | None = None
    content_cid: str | None = None
    image_cid: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    message: str
    tx_hash: str | None
    on_chain_id: str | None
    created_at: str
