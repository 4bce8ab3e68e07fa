"""The five externally-facing stages of a sponsorship run.

Each stage wraps one collaborator, performs exactly one logical side effect
per call and translates collaborator failures into the workflow's error
taxonomy. Stages know nothing about each other; sequencing lives in the
orchestrator.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone

from eth_account import Account

from seneschal_sponsor.commitment.builder import signable_message
from seneschal_sponsor.errors import (
    ConfirmationParseError,
    ConfirmationTimeout,
    PersistenceError,
    PublicationError,
    SignatureRejected,
    SubmissionRejected,
    SubmissionUncertain,
    WorkflowBusy,
)
from seneschal_sponsor.evm.abi import SPONSOR_FUNCTION
from seneschal_sponsor.interfaces.chain import ChainClient
from seneschal_sponsor.interfaces.content import ContentStore
from seneschal_sponsor.interfaces.signer import Signer
from seneschal_sponsor.interfaces.store import MetadataStore
from seneschal_sponsor.models.commitment import (
    CommitmentPayload,
    ConfirmationRecord,
    ContentReference,
    MetadataRecord,
    Signature,
    SponsorContent,
    TransactionHandle,
)
from seneschal_sponsor.models.records import InclusionReceipt

log = logging.getLogger(__name__)

# Topic layout of the sponsorship event: [signature, sponsor, proposalId]
ON_CHAIN_ID_TOPIC = 2


# ── Signature ──────────────────────────────────────────────


class SignatureStage:
    """Requests a typed-data signature; at most one request outstanding."""

    def __init__(self, signer: Signer, timeout: float = 300) -> None:
        self._signer = signer
        self._timeout = timeout
        self._pending = False

    @property
    def pending(self) -> bool:
        return self._pending

    async def request(self, payload: CommitmentPayload) -> Signature:
        if self._pending:
            raise WorkflowBusy("a signature request is already outstanding")

        self._pending = True
        log.info("Requesting signature for commitment %s", payload.digest[:18])
        try:
            raw = await asyncio.wait_for(
                self._signer.sign_typed_data(payload.typed_data()), self._timeout,
            )
        except SignatureRejected:
            log.warning("Signature declined for %s", payload.digest[:18])
            raise
        except asyncio.TimeoutError as exc:
            raise SignatureRejected(f"no signature after {self._timeout:g}s") from exc
        except Exception as exc:
            raise SignatureRejected(f"signature request failed: {exc}") from exc
        finally:
            self._pending = False

        return Signature(
            signature=bytes(raw),
            signer=self._signer.address,
            payload_digest=payload.digest,
        )


def verify_signature(payload: CommitmentPayload, signature: Signature) -> None:
    """Raise SubmissionRejected unless ``signature`` was made over ``payload``."""
    if signature.payload_digest != payload.digest:
        raise SubmissionRejected(
            f"signature is bound to {signature.payload_digest[:18]},"
            f" not to payload {payload.digest[:18]}"
        )
    try:
        recovered = Account.recover_message(
            signable_message(payload), signature=signature.signature,
        )
    except Exception as exc:
        raise SubmissionRejected(f"malformed signature: {exc}") from exc
    if recovered.lower() != signature.signer.lower():
        raise SubmissionRejected(
            f"signature recovers to {recovered}, expected {signature.signer}"
        )


# ── Submission ─────────────────────────────────────────────


class SubmissionStage:
    """Sends sponsor(commitment, signature). One chain call per send()."""

    def __init__(self, chain: ChainClient, contract_address: str) -> None:
        self._chain = chain
        self._contract_address = contract_address

    async def send(self, payload: CommitmentPayload, signature: Signature) -> TransactionHandle:
        verify_signature(payload, signature)

        try:
            tx_hash = await self._chain.call(
                self._contract_address,
                SPONSOR_FUNCTION,
                [payload.commitment_args(), signature.signature],
            )
        except SubmissionUncertain as exc:
            # Signed and possibly accepted: track the hash, never send again
            log.warning("Tracking %s after ambiguous broadcast: %s", exc.tx_hash[:18], exc)
            tx_hash = exc.tx_hash
        except SubmissionRejected:
            raise
        except Exception as exc:
            raise SubmissionRejected(f"sponsor() call failed: {exc}") from exc

        log.info("sponsor() submitted for %s (tx=%s)", payload.digest[:18], tx_hash[:18])
        return TransactionHandle(
            tx_hash=tx_hash,
            payload_digest=payload.digest,
            submitted_at=datetime.now(timezone.utc).isoformat(),
        )


# ── Confirmation ───────────────────────────────────────────


def extract_on_chain_id(
    receipt: InclusionReceipt, contract_address: str, event_topic: str = "",
) -> str:
    """Pull the proposal id out of the sponsorship event's topic 2.

    Only logs emitted by the Seneschal contract are considered; when
    ``event_topic`` is set, topic 0 must match it as well.
    """
    candidates = [
        entry for entry in receipt.logs
        if entry.address.lower() == contract_address.lower()
    ]
    if event_topic:
        candidates = [
            entry for entry in candidates
            if entry.topics and entry.topics[0].lower() == event_topic.lower()
        ]
    if not candidates:
        raise ConfirmationParseError(
            f"tx {receipt.tx_hash} has no sponsorship event from {contract_address}"
        )

    event = candidates[0]
    if len(event.topics) <= ON_CHAIN_ID_TOPIC:
        raise ConfirmationParseError(
            f"sponsorship event in tx {receipt.tx_hash} has {len(event.topics)} topics,"
            f" expected at least {ON_CHAIN_ID_TOPIC + 1}"
        )

    topic = event.topics[ON_CHAIN_ID_TOPIC].lower()
    if not topic.startswith("0x") or len(topic) != 66:
        raise ConfirmationParseError(f"topic {ON_CHAIN_ID_TOPIC} is not a 32-byte word: {topic}")
    return topic


class ConfirmationStage:
    """Waits for inclusion plus ``confirmations`` blocks within ``timeout``."""

    def __init__(
        self,
        chain: ChainClient,
        contract_address: str,
        confirmations: int = 1,
        timeout: float = 300,
        poll_interval: float = 2.0,
        event_topic: str = "",
    ) -> None:
        self._chain = chain
        self._contract_address = contract_address
        self._confirmations = max(1, confirmations)
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._event_topic = event_topic

    async def wait(self, handle: TransactionHandle) -> ConfirmationRecord:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._timeout
        log.info("Waiting for tx %s (%d confirmations)", handle.tx_hash[:18], self._confirmations)

        try:
            receipt = await self._chain.wait_for_inclusion(handle.tx_hash, self._timeout)
            if receipt.status != 1:
                raise SubmissionRejected(
                    f"tx {handle.tx_hash} reverted in block {receipt.block_number}"
                )
            await self._await_finality(handle, receipt.block_number, deadline)
        except (ConfirmationTimeout, SubmissionRejected):
            raise
        except Exception as exc:
            log.warning("Confirmation of %s interrupted: %s", handle.tx_hash[:18], exc)
            raise ConfirmationTimeout(handle.tx_hash, self._timeout) from exc

        on_chain_id = extract_on_chain_id(receipt, self._contract_address, self._event_topic)
        log.info(
            "tx %s finalized in block %d (id=%s)",
            handle.tx_hash[:18], receipt.block_number, on_chain_id[:18],
        )
        return ConfirmationRecord(
            on_chain_id=on_chain_id,
            block_number=receipt.block_number,
            block_hash=receipt.block_hash,
            tx_hash=handle.tx_hash,
            payload_digest=handle.payload_digest,
        )

    async def _await_finality(
        self, handle: TransactionHandle, block_number: int, deadline: float,
    ) -> None:
        loop = asyncio.get_running_loop()
        target = block_number + self._confirmations - 1
        while True:
            head = await self._chain.block_number()
            if head >= target:
                return
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ConfirmationTimeout(handle.tx_hash, self._timeout)
            log.debug("Head %d, waiting for block %d", head, target)
            await asyncio.sleep(min(self._poll_interval, remaining))


# ── Publication ────────────────────────────────────────────


def build_metadata_bundle(
    content: SponsorContent, image_cid: str, payload: CommitmentPayload,
) -> bytes:
    """JSON metadata document for a sponsored proposal."""
    bundle = {
        "name": content.title or "Sponsored proposal",
        "description": content.summary,
        "image": f"ipfs://{image_cid}",
        "external_url": payload.message.get("contextURL", ""),
        "source_digest": content.source_digest,
        "external_references": list(content.external_references),
        "commitment": payload.message,
    }
    return json.dumps(bundle, sort_keys=True, separators=(",", ":")).encode("utf-8")


class PublicationStage:
    """Uploads the image and the metadata bundle; returns the bundle CID."""

    def __init__(self, content_store: ContentStore) -> None:
        self._content_store = content_store

    async def publish(
        self, content: SponsorContent, payload: CommitmentPayload,
    ) -> ContentReference:
        try:
            image_cid = await self._content_store.upload(content.image, content.image_name)
            bundle = build_metadata_bundle(content, image_cid, payload)
            cid = await self._content_store.upload(bundle, "metadata.json")
        except PublicationError:
            raise
        except Exception as exc:
            raise PublicationError(f"upload failed: {exc}") from exc

        log.info("Published metadata %s (image %s)", cid, image_cid)
        return ContentReference(cid=cid, image_cid=image_cid)


# ── Persistence ────────────────────────────────────────────


class PersistenceStage:
    """Writes on_chain_id -> CID through the store's create-if-absent."""

    def __init__(self, store: MetadataStore) -> None:
        self._store = store

    async def persist(self, on_chain_id: str, content_ref: ContentReference) -> MetadataRecord:
        try:
            created = await self._store.set_if_absent(on_chain_id, content_ref.cid)
            if created:
                log.info("Stored metadata %s -> %s", on_chain_id[:18], content_ref.cid)
                return MetadataRecord(
                    on_chain_id=on_chain_id,
                    cid=content_ref.cid,
                    created_at=datetime.now(timezone.utc).isoformat(),
                )
            existing = await self._store.get_metadata(on_chain_id)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"metadata write failed: {exc}") from exc

        if existing is None:
            raise PersistenceError(f"metadata for {on_chain_id} reported present but not found")
        if existing.cid != content_ref.cid:
            log.warning(
                "Metadata for %s already set to %s, keeping it (ours: %s)",
                on_chain_id[:18], existing.cid, content_ref.cid,
            )
        else:
            log.info("Metadata for %s already stored", on_chain_id[:18])
        return existing
