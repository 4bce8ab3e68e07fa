"""Sponsor workflow - drives one commitment from draft to stored metadata."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable

from seneschal_sponsor.commitment.builder import CommitmentBuilder
from seneschal_sponsor.errors import (
    LinkageError,
    PreconditionError,
    SponsorError,
    SubmissionRejected,
    WorkflowBusy,
    WorkflowCancelled,
)
from seneschal_sponsor.interfaces.chain import ChainClient
from seneschal_sponsor.interfaces.content import ContentStore
from seneschal_sponsor.interfaces.signer import Signer
from seneschal_sponsor.interfaces.store import StateStore
from seneschal_sponsor.models.commitment import (
    CommitmentDraft,
    CommitmentPayload,
    ConfirmationRecord,
    ContentReference,
    Signature,
    SponsorContent,
    TransactionHandle,
)
from seneschal_sponsor.models.config import SponsorConfig
from seneschal_sponsor.models.workflow import (
    PRE_CHAIN_STATES,
    ProgressEvent,
    WorkflowOutcome,
    WorkflowState,
)
from seneschal_sponsor.workflow.stages import (
    ConfirmationStage,
    PersistenceStage,
    PublicationStage,
    SignatureStage,
    SubmissionStage,
)

log = logging.getLogger(__name__)


class SponsorWorkflow:
    """Orchestrates signing, submission, confirmation, publication and persistence.

    One payload is in flight at a time. ``submit()`` yields a ProgressEvent
    at every stage boundary; the last event carries the WorkflowOutcome.
    Stage failures never escape as exceptions: they end the run in
    FAILED(stage, cause). The submission ledger makes retries safe: a
    resubmitted draft resumes from whatever already happened on-chain
    instead of signing again.
    """

    def __init__(
        self,
        builder: CommitmentBuilder,
        signature: SignatureStage,
        submission: SubmissionStage,
        confirmation: ConfirmationStage,
        publication: PublicationStage,
        persistence: PersistenceStage,
        store: StateStore,
    ) -> None:
        self._builder = builder
        self._signature_stage = signature
        self._submission_stage = submission
        self._confirmation_stage = confirmation
        self._publication_stage = publication
        self._persistence_stage = persistence
        self._store = store

        self._state = WorkflowState.IDLE
        self._busy = False
        self._cancel_requested = False
        self._last_outcome: WorkflowOutcome | None = None

        # Transient, owned by the current run only
        self._payload: CommitmentPayload | None = None
        self._signature: Signature | None = None
        self._handle: TransactionHandle | None = None

        # Shielded broadcast; outlives a cancelled caller until the ledger row is written
        self._inflight_send: asyncio.Task[TransactionHandle] | None = None

    @classmethod
    def from_collaborators(
        cls,
        cfg: SponsorConfig,
        signer: Signer,
        chain: ChainClient,
        content_store: ContentStore,
        store: StateStore,
    ) -> SponsorWorkflow:
        """Wire the stages from configuration and raw collaborators."""
        return cls(
            builder=CommitmentBuilder.from_config(cfg),
            signature=SignatureStage(signer, timeout=cfg.signature_timeout),
            submission=SubmissionStage(chain, cfg.contract_address),
            confirmation=ConfirmationStage(
                chain,
                cfg.contract_address,
                confirmations=cfg.confirmations,
                timeout=cfg.confirmation_timeout,
                poll_interval=cfg.block_poll_interval,
                event_topic=cfg.sponsor_event_topic,
            ),
            publication=PublicationStage(content_store),
            persistence=PersistenceStage(store),
            store=store,
        )

    # ── Introspection ─────────────────────────────────────

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def last_outcome(self) -> WorkflowOutcome | None:
        return self._last_outcome

    @property
    def in_flight_payload(self) -> CommitmentPayload | None:
        return self._payload

    # ── Caller surface ────────────────────────────────────

    def cancel(self) -> None:
        """Stop the current run at the next stage boundary.

        Calls already in flight complete; nothing further runs until the
        same draft is submitted again.
        """
        if self._busy:
            log.info("Cancellation requested in state %s", self._state.value)
            self._cancel_requested = True

    async def run(
        self,
        draft: CommitmentDraft,
        content: SponsorContent,
        on_progress: Callable[[ProgressEvent], None] | None = None,
    ) -> WorkflowOutcome:
        """Consume submit() and return its terminal outcome."""
        outcome: WorkflowOutcome | None = None
        async for event in self.submit(draft, content):
            if on_progress is not None:
                on_progress(event)
            if event.outcome is not None:
                outcome = event.outcome
        if outcome is None:
            raise SponsorError("workflow ended without an outcome")
        return outcome

    async def submit(
        self, draft: CommitmentDraft, content: SponsorContent | None,
    ) -> AsyncIterator[ProgressEvent]:
        """Run the workflow for ``draft``, yielding progress events.

        Raises PreconditionError when no image was prepared and WorkflowBusy
        when another run is in flight, including a broadcast whose caller
        was cancelled but which has not been recorded yet. Neither changes
        the workflow state.
        """
        if content is None or not content.image:
            raise PreconditionError("proposal image is required")
        if self._busy:
            raise WorkflowBusy("a sponsorship is already in flight")

        self._busy = True
        self._cancel_requested = False
        try:
            async for event in self._run(draft, content):
                yield event
        finally:
            self._reset()

    # ── State machine ─────────────────────────────────────

    async def _run(
        self, draft: CommitmentDraft, content: SponsorContent,
    ) -> AsyncIterator[ProgressEvent]:
        # Building
        self._state = WorkflowState.BUILDING
        yield ProgressEvent(WorkflowState.BUILDING, "started")
        try:
            payload = self._builder.build(draft)
        except Exception as exc:
            yield await self._fail(WorkflowState.BUILDING, exc)
            return
        self._payload = payload
        yield ProgressEvent(WorkflowState.BUILDING, "completed", payload.digest)

        confirmation: ConfirmationRecord | None = None
        content_ref: ContentReference | None = None

        # What already happened for this exact payload?
        prior = await self._store.get_submission(payload.digest)
        if prior is not None and prior.status == "confirmed" and prior.on_chain_id:
            confirmation = ConfirmationRecord(
                on_chain_id=prior.on_chain_id,
                block_number=prior.block_number or 0,
                block_hash=prior.block_hash or "",
                tx_hash=prior.tx_hash or "",
                payload_digest=payload.digest,
            )
            self._handle = TransactionHandle(prior.tx_hash or "", payload.digest, prior.created_at)
            existing = await self._store.get_metadata(prior.on_chain_id)
            if existing is not None:
                log.info(
                    "Commitment %s already sponsored as %s, nothing to do",
                    payload.digest[:18], prior.on_chain_id[:18],
                )
                yield await self._done(
                    confirmation,
                    ContentReference(existing.cid, prior.image_cid or ""),
                    short_circuited=True,
                )
                return
            if prior.content_cid:
                content_ref = ContentReference(prior.content_cid, prior.image_cid or "")
            log.info("Resuming confirmed commitment %s at publication", payload.digest[:18])
        elif prior is not None and prior.status == "submitted" and prior.tx_hash:
            self._handle = TransactionHandle(prior.tx_hash, payload.digest, prior.created_at)
            if prior.content_cid:
                content_ref = ContentReference(prior.content_cid, prior.image_cid or "")
            log.info("Resuming commitment %s at tx %s", payload.digest[:18], prior.tx_hash[:18])

        if self._handle is None:
            # Awaiting signature
            if self._cancel_requested:
                yield await self._fail(WorkflowState.AWAITING_SIGNATURE, WorkflowCancelled("cancelled"))
                return
            self._state = WorkflowState.AWAITING_SIGNATURE
            yield ProgressEvent(WorkflowState.AWAITING_SIGNATURE, "started")
            try:
                self._signature = await self._signature_stage.request(payload)
            except Exception as exc:
                yield await self._fail(WorkflowState.AWAITING_SIGNATURE, exc)
                return
            yield ProgressEvent(WorkflowState.AWAITING_SIGNATURE, "completed")

            # Submitting
            if self._cancel_requested:
                yield await self._fail(WorkflowState.SUBMITTING, WorkflowCancelled("cancelled"))
                return
            self._state = WorkflowState.SUBMITTING
            yield ProgressEvent(WorkflowState.SUBMITTING, "started")
            self._inflight_send = asyncio.create_task(
                self._send_and_record(payload, self._signature)
            )
            try:
                self._handle = await asyncio.shield(self._inflight_send)
            except Exception as exc:
                yield await self._fail(WorkflowState.SUBMITTING, exc)
                return
            finally:
                self._signature = None
            yield ProgressEvent(WorkflowState.SUBMITTING, "completed", self._handle.tx_hash)

        # Confirming and publishing run side by side; both gate persisting
        if self._cancel_requested:
            yield await self._fail(WorkflowState.CONFIRMING, WorkflowCancelled("cancelled"))
            return
        handle = self._handle
        self._state = WorkflowState.CONFIRMING
        if confirmation is None:
            yield ProgressEvent(WorkflowState.CONFIRMING, "started", handle.tx_hash)
        else:
            yield ProgressEvent(WorkflowState.CONFIRMING, "skipped", confirmation.on_chain_id)
        if content_ref is None:
            yield ProgressEvent(WorkflowState.PUBLISHING, "started")
        else:
            yield ProgressEvent(WorkflowState.PUBLISHING, "skipped", content_ref.cid)

        confirm_result, publish_result = await asyncio.gather(
            self._confirm(handle) if confirmation is None else _value(confirmation),
            self._publish(content, payload) if content_ref is None else _value(content_ref),
            return_exceptions=True,
        )

        if isinstance(confirm_result, BaseException):
            if not isinstance(confirm_result, Exception):
                raise confirm_result
            yield await self._fail(WorkflowState.CONFIRMING, confirm_result)
            return
        if confirmation is None:
            confirmation = confirm_result
            yield ProgressEvent(WorkflowState.CONFIRMING, "completed", confirmation.on_chain_id)

        self._state = WorkflowState.PUBLISHING
        if isinstance(publish_result, BaseException):
            if not isinstance(publish_result, Exception):
                raise publish_result
            yield await self._fail(WorkflowState.PUBLISHING, publish_result)
            return
        if content_ref is None:
            content_ref = publish_result
            yield ProgressEvent(WorkflowState.PUBLISHING, "completed", content_ref.cid)

        # Persisting
        if self._cancel_requested:
            yield await self._fail(WorkflowState.PERSISTING, WorkflowCancelled("cancelled"))
            return
        self._state = WorkflowState.PERSISTING
        yield ProgressEvent(WorkflowState.PERSISTING, "started")
        try:
            _verify_linkage(payload, handle, confirmation)
            record = await self._persistence_stage.persist(confirmation.on_chain_id, content_ref)
        except Exception as exc:
            yield await self._fail(WorkflowState.PERSISTING, exc)
            return
        yield ProgressEvent(WorkflowState.PERSISTING, "completed", record.cid)

        if record.cid != content_ref.cid:
            content_ref = ContentReference(record.cid)
        yield await self._done(confirmation, content_ref)

    # ── Stage helpers ─────────────────────────────────────

    async def _send_and_record(
        self, payload: CommitmentPayload, signature: Signature,
    ) -> TransactionHandle:
        """Broadcast and write the ledger row; shielded from caller cancellation."""
        handle = await self._submission_stage.send(payload, signature)
        try:
            await self._store.record_submission(
                payload.digest, payload.canonical_bytes().decode("utf-8"), handle.tx_hash,
            )
            await self._store.log_activity(
                "sponsor_submitted",
                f"sponsor() broadcast for {payload.digest[:18]}",
                tx_hash=handle.tx_hash,
            )
        except Exception as exc:
            # The transaction exists either way; the run carries the handle.
            log.error("Ledger write failed for tx %s: %s", handle.tx_hash, exc, exc_info=True)
        return handle

    async def _confirm(self, handle: TransactionHandle) -> ConfirmationRecord:
        try:
            record = await self._confirmation_stage.wait(handle)
        except SubmissionRejected:
            await self._store.record_reverted(handle.payload_digest)
            raise
        await self._store.record_confirmation(
            handle.payload_digest, record.on_chain_id, record.block_number, record.block_hash,
        )
        await self._store.log_activity(
            "sponsor_confirmed",
            f"Confirmed in block {record.block_number}",
            tx_hash=record.tx_hash,
            on_chain_id=record.on_chain_id,
        )
        return record

    async def _publish(
        self, content: SponsorContent, payload: CommitmentPayload,
    ) -> ContentReference:
        ref = await self._publication_stage.publish(content, payload)
        await self._store.record_content(payload.digest, ref.cid, ref.image_cid)
        return ref

    async def _done(
        self,
        confirmation: ConfirmationRecord,
        content_ref: ContentReference,
        short_circuited: bool = False,
    ) -> ProgressEvent:
        self._state = WorkflowState.DONE
        outcome = WorkflowOutcome(
            state=WorkflowState.DONE,
            on_chain_id=confirmation.on_chain_id,
            content_ref=content_ref,
            tx_hash=confirmation.tx_hash or None,
            onchain_effect=True,
            short_circuited=short_circuited,
        )
        self._last_outcome = outcome
        if not short_circuited:
            try:
                await self._store.log_activity(
                    "sponsor_done",
                    f"Proposal {confirmation.on_chain_id[:18]} -> {content_ref.cid}",
                    tx_hash=confirmation.tx_hash or None,
                    on_chain_id=confirmation.on_chain_id,
                )
            except Exception as log_exc:
                log.error("Could not record completion in activity log: %s", log_exc)
        log.info("Sponsorship done: %s -> %s", confirmation.on_chain_id[:18], content_ref.cid)
        return ProgressEvent(WorkflowState.DONE, "done", outcome=outcome)

    async def _fail(self, stage: WorkflowState, exc: Exception) -> ProgressEvent:
        reverted = stage == WorkflowState.CONFIRMING and isinstance(exc, SubmissionRejected)
        onchain_effect = (
            self._handle is not None and stage not in PRE_CHAIN_STATES and not reverted
        )
        self._state = WorkflowState.FAILED
        outcome = WorkflowOutcome(
            state=WorkflowState.FAILED,
            tx_hash=self._handle.tx_hash if self._handle else None,
            failed_stage=stage,
            cause=exc,
            onchain_effect=onchain_effect,
        )
        self._last_outcome = outcome

        if isinstance(exc, SponsorError):
            log.warning("Sponsorship failed at %s: %s", stage.value, exc)
        else:
            log.error("Sponsorship failed at %s: %s", stage.value, exc, exc_info=exc)
        try:
            await self._store.log_activity(
                "sponsor_failed",
                f"{stage.value}: {type(exc).__name__}: {exc}",
                tx_hash=outcome.tx_hash,
            )
        except Exception as log_exc:
            log.error("Could not record failure in activity log: %s", log_exc)
        return ProgressEvent(stage, "failed", str(exc), outcome=outcome)

    def _reset(self) -> None:
        self._payload = None
        self._signature = None
        self._handle = None
        self._cancel_requested = False
        send = self._inflight_send
        if send is not None and not send.done():
            # Caller went away mid-broadcast: stay busy until the send is recorded
            log.warning("Run abandoned during sponsor() broadcast, holding workflow until it lands")
            self._state = WorkflowState.SUBMITTING
            send.add_done_callback(self._release_after_send)
            return
        self._inflight_send = None
        self._busy = False
        self._state = WorkflowState.IDLE

    def _release_after_send(self, send: asyncio.Task) -> None:
        if not send.cancelled() and send.exception() is not None:
            log.error("Detached sponsor() send failed: %s", send.exception())
        self._inflight_send = None
        self._busy = False
        self._state = WorkflowState.IDLE


def _verify_linkage(
    payload: CommitmentPayload,
    handle: TransactionHandle,
    confirmation: ConfirmationRecord,
) -> None:
    """Persisting is only allowed for the confirmation of this run's payload."""
    if confirmation.payload_digest != payload.digest:
        raise LinkageError(
            f"confirmation is for {confirmation.payload_digest[:18]},"
            f" run signed {payload.digest[:18]}"
        )
    if handle.payload_digest != payload.digest:
        raise LinkageError(f"handle {handle.tx_hash} belongs to another payload")
    if confirmation.tx_hash and handle.tx_hash and confirmation.tx_hash != handle.tx_hash:
        raise LinkageError(
            f"confirmed tx {confirmation.tx_hash} is not the submitted tx {handle.tx_hash}"
        )


async def _value(value):
    return value
