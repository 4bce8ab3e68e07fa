"""A signature is only ever submitted with the payload it was made over."""

from __future__ import annotations

import asyncio

import pytest
from eth_account import Account

from seneschal_sponsor.commitment.builder import CommitmentBuilder, signable_message
from seneschal_sponsor.errors import SignatureRejected, SubmissionRejected, WorkflowBusy
from seneschal_sponsor.evm.signer import LocalKeySigner
from seneschal_sponsor.models.commitment import Signature
from seneschal_sponsor.workflow.stages import SignatureStage, SubmissionStage, verify_signature

from tests.conftest import CONTRACT_ADDRESS, OTHER_KEY, TEST_ADDRESS, TEST_KEY, make_test_config
from tests.factories import make_draft
from tests.mocks import MockSigner


@pytest.fixture
def builder():
    return CommitmentBuilder.from_config(make_test_config())


async def test_local_signer_recovers_to_sponsor(builder):
    """LocalKeySigner output recovers to the sponsor address."""
    payload = builder.build(make_draft())
    signer = LocalKeySigner(TEST_KEY)

    raw = await signer.sign_typed_data(payload.typed_data())

    assert signer.address == TEST_ADDRESS
    assert Account.recover_message(signable_message(payload), signature=raw) == TEST_ADDRESS


async def test_signature_stage_binds_digest(builder):
    """The Signature value carries the digest of the payload it signed."""
    payload = builder.build(make_draft())
    stage = SignatureStage(LocalKeySigner(TEST_KEY))

    signature = await stage.request(payload)

    assert signature.payload_digest == payload.digest
    assert signature.signer == TEST_ADDRESS
    verify_signature(payload, signature)
    assert not stage.pending


async def test_signature_for_other_payload_is_refused(builder, mock_chain):
    """sig(P) paired with P' → SubmissionRejected, no chain call."""
    payload = builder.build(make_draft(loot=50))
    other = builder.build(make_draft(loot=49))
    signature = await SignatureStage(LocalKeySigner(TEST_KEY)).request(payload)
    stage = SubmissionStage(mock_chain, CONTRACT_ADDRESS)

    with pytest.raises(SubmissionRejected):
        await stage.send(other, signature)

    assert mock_chain.calls == []


async def test_relabelled_signature_is_refused(builder):
    """sig(P) relabelled with digest(P') still fails recovery against P'."""
    payload = builder.build(make_draft(loot=50))
    other = builder.build(make_draft(loot=49))
    signature = await SignatureStage(LocalKeySigner(TEST_KEY)).request(payload)
    forged = Signature(
        signature=signature.signature,
        signer=signature.signer,
        payload_digest=other.digest,
    )

    with pytest.raises(SubmissionRejected):
        verify_signature(other, forged)


async def test_signature_from_wrong_key_is_refused(builder):
    """A signature claiming the sponsor but made by another key is refused."""
    payload = builder.build(make_draft())
    raw = await LocalKeySigner(OTHER_KEY).sign_typed_data(payload.typed_data())
    claimed = Signature(signature=raw, signer=TEST_ADDRESS, payload_digest=payload.digest)

    with pytest.raises(SubmissionRejected):
        verify_signature(payload, claimed)


async def test_garbage_signature_is_refused(builder):
    payload = builder.build(make_draft())
    junk = Signature(signature=b"\x01" * 10, signer=TEST_ADDRESS, payload_digest=payload.digest)

    with pytest.raises(SubmissionRejected):
        verify_signature(payload, junk)


# ── Signature request lifecycle ───────────────────────────────


async def test_signature_timeout_is_rejection(builder):
    signer = MockSigner(TEST_KEY)
    signer.gate = asyncio.Event()
    stage = SignatureStage(signer, timeout=0.05)

    with pytest.raises(SignatureRejected, match="no signature"):
        await stage.request(builder.build(make_draft()))
    assert not stage.pending


async def test_one_outstanding_request(builder):
    signer = MockSigner(TEST_KEY)
    signer.gate = asyncio.Event()
    stage = SignatureStage(signer)
    payload = builder.build(make_draft())

    first = asyncio.create_task(stage.request(payload))
    await asyncio.sleep(0)
    assert stage.pending
    with pytest.raises(WorkflowBusy):
        await stage.request(payload)

    signer.gate.set()
    signature = await first
    assert signature.payload_digest == payload.digest
    assert not stage.pending
