"""SQLite implementation of the StateStore protocol."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from seneschal_sponsor.models.commitment import MetadataRecord
from seneschal_sponsor.models.records import ActivityRecord, SubmissionRecord

SCHEMA = """
-- Write-once metadata: proposal id -> IPFS bundle CID
CREATE TABLE IF NOT EXISTS metadata (
    on_chain_id TEXT PRIMARY KEY,
    cid TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Submission ledger, one row per commitment payload
CREATE TABLE IF NOT EXISTS submissions (
    payload_digest TEXT PRIMARY KEY,
    payload_json TEXT NOT NULL,
    tx_hash TEXT,
    status TEXT NOT NULL DEFAULT 'submitted',
    on_chain_id TEXT,
    block_number INTEGER,
    block_hash TEXT,
    content_cid TEXT,
    image_cid TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_submissions_tx ON submissions(tx_hash);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    tx_hash TEXT,
    on_chain_id TEXT,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStateStore:
    """SQLite-backed implementation of the StateStore protocol."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Metadata (write-once) ──────────────────────────────

    async def set_if_absent(self, key: str, value: str) -> bool:
        """Create ``key`` -> ``value`` unless the key exists. Never overwrites.

        The conflict check and the insert are one statement, so two writers
        racing on the same key (even on separate connections) get exactly
        one True.
        """
        cur = await self.db.execute(
            "INSERT INTO metadata (on_chain_id, cid, created_at) VALUES (?, ?, ?)"
            " ON CONFLICT(on_chain_id) DO NOTHING",
            (key, value, _now()),
        )
        await self.db.commit()
        return cur.rowcount == 1

    async def get_metadata(self, key: str) -> MetadataRecord | None:
        async with self.db.execute(
            "SELECT * FROM metadata WHERE on_chain_id=?", (key,)
        ) as cur:
            row = await cur.fetchone()
            if row:
                return MetadataRecord(
                    on_chain_id=row["on_chain_id"],
                    cid=row["cid"],
                    created_at=row["created_at"],
                )
        return None

    async def get_all_metadata(self) -> list[MetadataRecord]:
        async with self.db.execute("SELECT * FROM metadata ORDER BY created_at") as cur:
            return [
                MetadataRecord(
                    on_chain_id=row["on_chain_id"],
                    cid=row["cid"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]

    # ── Submission ledger ──────────────────────────────────

    async def get_submission(self, payload_digest: str) -> SubmissionRecord | None:
        async with self.db.execute(
            "SELECT * FROM submissions WHERE payload_digest=?", (payload_digest,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_submission(row) if row else None

    async def get_submission_by_tx(self, tx_hash: str) -> SubmissionRecord | None:
        async with self.db.execute(
            "SELECT * FROM submissions WHERE tx_hash=?", (tx_hash,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_submission(row) if row else None

    async def record_submission(
        self, payload_digest: str, payload_json: str, tx_hash: str,
    ) -> None:
        now = _now()
        await self.db.execute(
            "INSERT INTO submissions"
            " (payload_digest, payload_json, tx_hash, status, created_at, updated_at)"
            " VALUES (?, ?, ?, 'submitted', ?, ?)"
            " ON CONFLICT(payload_digest) DO UPDATE SET"
            " tx_hash=excluded.tx_hash, status='submitted', updated_at=excluded.updated_at",
            (payload_digest, payload_json, tx_hash, now, now),
        )
        await self.db.commit()

    async def record_confirmation(
        self,
        payload_digest: str,
        on_chain_id: str,
        block_number: int,
        block_hash: str,
    ) -> None:
        await self.db.execute(
            "UPDATE submissions SET status='confirmed', on_chain_id=?, block_number=?,"
            " block_hash=?, updated_at=? WHERE payload_digest=?",
            (on_chain_id, block_number, block_hash, _now(), payload_digest),
        )
        await self.db.commit()

    async def record_reverted(self, payload_digest: str) -> None:
        await self.db.execute(
            "UPDATE submissions SET status='reverted', updated_at=? WHERE payload_digest=?",
            (_now(), payload_digest),
        )
        await self.db.commit()

    async def record_content(
        self, payload_digest: str, content_cid: str, image_cid: str,
    ) -> None:
        await self.db.execute(
            "UPDATE submissions SET content_cid=?, image_cid=?, updated_at=?"
            " WHERE payload_digest=?",
            (content_cid, image_cid, _now(), payload_digest),
        )
        await self.db.commit()

    async def get_submissions_by_status(self, status: str) -> list[SubmissionRecord]:
        async with self.db.execute(
            "SELECT * FROM submissions WHERE status=? ORDER BY created_at", (status,)
        ) as cur:
            return [_row_to_submission(row) async for row in cur]

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        tx_hash: str | None = None,
        on_chain_id: str | None = None,
    ) -> None:
        await self.db.execute(
            "INSERT INTO activity_log (event_type, tx_hash, on_chain_id, message, created_at)"
            " VALUES (?, ?, ?, ?, ?)",
            (event_type, tx_hash, on_chain_id, message, _now()),
        )
        await self.db.commit()

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        async with self.db.execute(
            "SELECT * FROM activity_log ORDER BY id DESC LIMIT ?", (limit,)
        ) as cur:
            return [
                ActivityRecord(
                    id=row["id"],
                    event_type=row["event_type"],
                    message=row["message"],
                    tx_hash=row["tx_hash"],
                    on_chain_id=row["on_chain_id"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]


# ── Row converters ─────────────────────────────────────────


def _row_to_submission(row: aiosqlite.Row) -> SubmissionRecord:
    return SubmissionRecord(
        payload_digest=row["payload_digest"],
        payload_json=row["payload_json"],
        tx_hash=row["tx_hash"],
        status=row["status"],
        on_chain_id=row["on_chain_id"],
        block_number=row["block_number"],
        block_hash=row["block_hash"],
        content_cid=row["content_cid"],
        image_cid=row["image_cid"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
