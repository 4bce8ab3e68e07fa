"""Commitment entities carried through one sponsorship run."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class CommitmentDraft:
    """Validated form values. Produced by validate_form(), never mutated."""

    loot: int  # whole loot units, 0 < loot < 100
    expiration: datetime  # timezone-aware, strictly in the future
    recipient: str  # checksummed 20-byte address
    proposal_url: str


@dataclass(frozen=True)
class CommitmentPayload:
    """EIP-712 typed data for a Seneschal Commitment plus its digest.

    ``digest`` is keccak256(0x1901 || domainSeparator || structHash), i.e.
    exactly the hash the signer signs and the contract recovers against.
    """

    domain: dict[str, Any]
    types: dict[str, list[dict[str, str]]]
    message: dict[str, Any]
    digest: str  # 0x-prefixed hex
    primary_type: str = "Commitment"

    def typed_data(self) -> dict[str, Any]:
        """The {domain, types, message, primaryType} descriptor handed to signers."""
        return {
            "domain": self.domain,
            "types": self.types,
            "message": self.message,
            "primaryType": self.primary_type,
        }

    def canonical_bytes(self) -> bytes:
        """Deterministic JSON encoding, used for ledger storage and equality checks."""
        return json.dumps(
            self.typed_data(), sort_keys=True, separators=(",", ":")
        ).encode("utf-8")

    def commitment_args(self) -> tuple:
        """Message values in struct order, as the contract ABI expects the tuple."""
        fields = self.types[self.primary_type]
        return tuple(self.message[f["name"]] for f in fields)


@dataclass(frozen=True)
class Signature:
    """A typed-data signature bound to exactly one payload digest."""

    signature: bytes
    signer: str
    payload_digest: str


@dataclass(frozen=True)
class TransactionHandle:
    """A broadcast but not yet confirmed sponsor() call."""

    tx_hash: str
    payload_digest: str
    submitted_at: str = ""


@dataclass(frozen=True)
class ConfirmationRecord:
    """Proof that the sponsor() call for ``payload_digest`` was finalized."""

    on_chain_id: str  # topic 2 of the sponsorship event, 0x-hex
    block_number: int
    block_hash: str
    tx_hash: str
    payload_digest: str


@dataclass(frozen=True)
class ContentReference:
    """IPFS CIDs of the published metadata bundle and its image."""

    cid: str
    image_cid: str = ""


@dataclass(frozen=True)
class MetadataRecord:
    """The persisted association on_chain_id -> metadata bundle CID."""

    on_chain_id: str
    cid: str
    created_at: str = ""


@dataclass(frozen=True)
class SponsorContent:
    """Off-chain material prepared before submit(): image, summary, source digest."""

    image: bytes
    summary: str = ""
    source_digest: str = ""  # Arweave tx id of the proposal digest
    image_name: str = "proposal.png"
    title: str = ""
    external_references: tuple[str, ...] = field(default_factory=tuple)
