"""Stage failures end the run in FAILED(stage, cause) with the right on-chain flag."""

from __future__ import annotations

import pytest

from seneschal_sponsor.commitment.builder import CommitmentBuilder
from seneschal_sponsor.errors import (
    LinkageError,
    PersistenceError,
    PreconditionError,
    PublicationError,
    SignatureRejected,
    SponsorError,
    SubmissionRejected,
)
from seneschal_sponsor.models.commitment import (
    ConfirmationRecord,
    SponsorContent,
    TransactionHandle,
)
from seneschal_sponsor.models.workflow import ProgressEvent, WorkflowState
from seneschal_sponsor.workflow.orchestrator import _verify_linkage

from tests.conftest import ON_CHAIN_ID, make_test_config
from tests.factories import make_content, make_draft


# ── Before anything is broadcast ──────────────────────────────


async def test_missing_image_is_precondition(workflow, mock_signer):
    """submit() without an image raises and leaves the workflow idle."""
    with pytest.raises(PreconditionError):
        await workflow.run(make_draft(), SponsorContent(image=b""))

    with pytest.raises(PreconditionError):
        await workflow.run(make_draft(), None)

    assert workflow.state == WorkflowState.IDLE
    assert not workflow.busy
    assert mock_signer.sign_calls == []


async def test_signature_declined(workflow, store, mock_signer, mock_chain):
    """Declined signature → Failed(AWAITING_SIGNATURE), nothing on-chain."""
    mock_signer.decline = True

    outcome = await workflow.run(make_draft(), make_content())

    assert outcome.state == WorkflowState.FAILED
    assert outcome.failed_stage == WorkflowState.AWAITING_SIGNATURE
    assert isinstance(outcome.cause, SignatureRejected)
    assert not outcome.onchain_effect
    assert not outcome.recoverable
    assert mock_chain.calls == []
    assert await store.get_metadata(ON_CHAIN_ID) is None


async def test_submission_rejected(workflow, store, mock_chain, mock_content):
    """Contract refuses sponsor() → Failed(SUBMITTING), no ledger row, no upload."""
    mock_chain.reject = "execution reverted: Seneschal: not sponsor"

    outcome = await workflow.run(make_draft(), make_content())

    assert outcome.failed_stage == WorkflowState.SUBMITTING
    assert isinstance(outcome.cause, SubmissionRejected)
    assert not outcome.onchain_effect
    assert outcome.tx_hash is None
    assert await store.get_submissions_by_status("submitted") == []
    assert mock_content.uploads == []


# ── After broadcast ───────────────────────────────────────────


async def test_publication_failure_then_resume(workflow, store, mock_signer, mock_chain, mock_content):
    """Upload fails → Failed(PUBLISHING) with tx on-chain; re-run only publishes."""
    mock_content.fail = True

    failed = await workflow.run(make_draft(), make_content())

    assert failed.failed_stage == WorkflowState.PUBLISHING
    assert isinstance(failed.cause, PublicationError)
    assert failed.onchain_effect
    assert failed.recoverable
    assert failed.tx_hash is not None
    assert await store.get_metadata(ON_CHAIN_ID) is None

    # Confirmation already recorded while publishing failed
    submission = await store.get_submission_by_tx(failed.tx_hash)
    assert submission.status == "confirmed"

    mock_content.fail = False
    events = []
    outcome = await workflow.run(make_draft(), make_content(), on_progress=events.append)

    assert outcome.success
    assert outcome.on_chain_id == ON_CHAIN_ID
    assert len(mock_signer.sign_calls) == 1
    assert len(mock_chain.calls) == 1
    assert len(mock_chain.wait_calls) == 1
    assert (WorkflowState.CONFIRMING, "skipped") in [(e.stage, e.status) for e in events]


async def test_persistence_failure_then_resume(workflow, store, mock_signer, mock_chain, mock_content):
    """Store write fails → Failed(PERSISTING); re-run performs only the write."""
    store.fail_writes = 1

    failed = await workflow.run(make_draft(), make_content())

    assert failed.failed_stage == WorkflowState.PERSISTING
    assert isinstance(failed.cause, PersistenceError)
    assert failed.onchain_effect
    assert failed.recoverable

    outcome = await workflow.run(make_draft(), make_content())

    assert outcome.success
    assert len(mock_signer.sign_calls) == 1
    assert len(mock_chain.calls) == 1
    assert len(mock_content.uploads) == 2
    assert len(store.set_if_absent_calls) == 2
    record = await store.get_metadata(ON_CHAIN_ID)
    assert record.cid == outcome.content_ref.cid


async def test_failure_is_logged(workflow, store, mock_signer):
    mock_signer.decline = True

    await workflow.run(make_draft(), make_content())

    activity = await store.get_recent_activity(10)
    assert activity[0].event_type == "sponsor_failed"
    assert "awaiting_signature" in activity[0].message


async def test_workflow_reusable_after_failure(workflow, mock_signer):
    """After FAILED, transient state is cleared and the workflow is idle again."""
    mock_signer.decline = True
    await workflow.run(make_draft(), make_content())

    assert workflow.state == WorkflowState.IDLE
    assert workflow.last_outcome.state == WorkflowState.FAILED
    assert workflow.in_flight_payload is None
    assert not workflow.busy

    mock_signer.decline = False
    outcome = await workflow.run(make_draft(), make_content())
    assert outcome.success


# ── Linkage ───────────────────────────────────────────────────


def test_linkage_rejects_foreign_confirmation():
    """A confirmation for another payload or tx never reaches persistence."""
    payload = CommitmentBuilder.from_config(make_test_config()).build(make_draft())
    handle = TransactionHandle(tx_hash="0x" + "1" * 64, payload_digest=payload.digest)
    confirmation = ConfirmationRecord(
        on_chain_id=ON_CHAIN_ID,
        block_number=1,
        block_hash="0x" + "b" * 64,
        tx_hash=handle.tx_hash,
        payload_digest=payload.digest,
    )
    _verify_linkage(payload, handle, confirmation)

    foreign_payload = ConfirmationRecord(
        ON_CHAIN_ID, 1, "0x" + "b" * 64, handle.tx_hash, "0x" + "f" * 64,
    )
    with pytest.raises(LinkageError):
        _verify_linkage(payload, handle, foreign_payload)

    foreign_tx = ConfirmationRecord(
        ON_CHAIN_ID, 1, "0x" + "b" * 64, "0x" + "2" * 64, payload.digest,
    )
    with pytest.raises(LinkageError):
        _verify_linkage(payload, handle, foreign_tx)


# ── Ambiguous broadcast ───────────────────────────────────────


async def test_ambiguous_broadcast_is_tracked_not_rejected(workflow, mock_chain):
    """Transport error after the tx left → run follows the signed hash to DONE."""
    mock_chain.ambiguous = "Server disconnected"

    outcome = await workflow.run(make_draft(), make_content())

    assert outcome.success
    assert outcome.tx_hash == "0x" + f"{0xA1:064x}"
    assert len(mock_chain.calls) == 1
    assert mock_chain.wait_calls == [outcome.tx_hash]


async def test_ambiguous_broadcast_then_timeout_resumes(
    workflow, store, mock_signer, mock_chain,
):
    """Ambiguous send + timeout → Failed(CONFIRMING) with on-chain effect; re-run never resends."""
    mock_chain.ambiguous = "Server disconnected"
    mock_chain.pending_timeouts = 1

    failed = await workflow.run(make_draft(), make_content())

    assert failed.failed_stage == WorkflowState.CONFIRMING
    assert failed.onchain_effect
    assert failed.recoverable
    row = await store.get_submission_by_tx(failed.tx_hash)
    assert row is not None
    assert row.status == "submitted"

    mock_chain.ambiguous = None
    outcome = await workflow.run(make_draft(), make_content())

    assert outcome.success
    assert outcome.tx_hash == failed.tx_hash
    assert len(mock_signer.sign_calls) == 1
    assert len(mock_chain.calls) == 1


# ── Bookkeeping failures ──────────────────────────────────────


async def test_activity_log_failure_after_persist_still_done(workflow, store):
    """A failing activity-log write after persisting does not turn DONE into an exception."""
    store.fail_activity = {"sponsor_done"}

    outcome = await workflow.run(make_draft(), make_content())

    assert outcome.success
    assert (await store.get_metadata(ON_CHAIN_ID)).cid == outcome.content_ref.cid
    assert not workflow.busy


async def test_stream_without_outcome_is_error(workflow, monkeypatch):
    async def no_outcome(draft, content):
        yield ProgressEvent(WorkflowState.BUILDING, "started")

    monkeypatch.setattr(workflow, "submit", no_outcome)

    with pytest.raises(SponsorError, match="without an outcome"):
        await workflow.run(make_draft(), make_content())
