"""Commitment builder - draft to EIP-712 typed data for Seneschal.sponsor()."""

from __future__ import annotations

import json
from typing import Any

from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak, to_checksum_address

from seneschal_sponsor.models.commitment import CommitmentDraft, CommitmentPayload
from seneschal_sponsor.models.config import ZERO_ADDRESS, SponsorConfig

PRIMARY_TYPE = "Commitment"

# Field order matches the Seneschal Commitment struct; the ABI tuple relies on it.
COMMITMENT_FIELDS: list[dict[str, str]] = [
    {"name": "eligibleHat", "type": "uint256"},
    {"name": "shares", "type": "uint256"},
    {"name": "loot", "type": "uint256"},
    {"name": "extraRewardAmount", "type": "uint256"},
    {"name": "timeFactor", "type": "uint256"},
    {"name": "sponsoredTime", "type": "uint256"},
    {"name": "expirationTime", "type": "uint256"},
    {"name": "contextURL", "type": "string"},
    {"name": "recipient", "type": "address"},
    {"name": "extraRewardToken", "type": "address"},
]

DOMAIN_FIELDS: list[dict[str, str]] = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


class CommitmentBuilder:
    """Turns a CommitmentDraft into a deterministic CommitmentPayload.

    The payload depends only on the draft and the builder's domain settings.
    ``sponsoredTime`` and ``timeFactor`` are stamped by the contract, so they
    are always 0 here; two builds of equal drafts produce identical bytes.
    """

    def __init__(
        self,
        chain_id: int,
        contract_address: str,
        domain_name: str = "Seneschal",
        domain_version: str = "1.0",
        eligible_hat: int = 0,
        loot_decimals: int = 18,
        extra_reward_token: str = ZERO_ADDRESS,
    ) -> None:
        self._domain = {
            "name": domain_name,
            "version": domain_version,
            "chainId": int(chain_id),
            "verifyingContract": to_checksum_address(contract_address),
        }
        self._eligible_hat = int(eligible_hat)
        self._loot_unit = 10 ** int(loot_decimals)
        self._extra_reward_token = to_checksum_address(extra_reward_token)

    @classmethod
    def from_config(cls, cfg: SponsorConfig) -> CommitmentBuilder:
        return cls(
            chain_id=cfg.chain_id,
            contract_address=cfg.contract_address,
            domain_name=cfg.domain_name,
            domain_version=cfg.domain_version,
            eligible_hat=cfg.eligible_hat,
            loot_decimals=cfg.loot_decimals,
            extra_reward_token=cfg.extra_reward_token,
        )

    def build(self, draft: CommitmentDraft) -> CommitmentPayload:
        message: dict[str, Any] = {
            "eligibleHat": self._eligible_hat,
            "shares": 0,
            "loot": draft.loot * self._loot_unit,
            "extraRewardAmount": 0,
            "timeFactor": 0,
            "sponsoredTime": 0,
            "expirationTime": int(draft.expiration.timestamp()),
            "contextURL": draft.proposal_url,
            "recipient": to_checksum_address(draft.recipient),
            "extraRewardToken": self._extra_reward_token,
        }
        types = {
            "EIP712Domain": [dict(f) for f in DOMAIN_FIELDS],
            PRIMARY_TYPE: [dict(f) for f in COMMITMENT_FIELDS],
        }
        domain = dict(self._domain)
        digest = _typed_data_digest(domain, types, message)
        return CommitmentPayload(
            domain=domain,
            types=types,
            message=message,
            digest=digest,
            primary_type=PRIMARY_TYPE,
        )


def signable_message(payload: CommitmentPayload) -> SignableMessage:
    """EIP-191 version 0x01 message for a payload, as signers and recover() use it."""
    return encode_typed_data(full_message=payload.typed_data())


def payload_from_json(raw: str) -> CommitmentPayload:
    """Rebuild a payload from CommitmentPayload.canonical_bytes() (ledger rows)."""
    data = json.loads(raw)
    digest = _typed_data_digest(data["domain"], data["types"], data["message"])
    return CommitmentPayload(
        domain=data["domain"],
        types=data["types"],
        message=data["message"],
        digest=digest,
        primary_type=data.get("primaryType", PRIMARY_TYPE),
    )


def _typed_data_digest(
    domain: dict[str, Any], types: dict[str, Any], message: dict[str, Any],
) -> str:
    signable = encode_typed_data(full_message={
        "domain": domain,
        "types": types,
        "message": message,
        "primaryType": PRIMARY_TYPE,
    })
    raw = b"\x19" + signable.version + signable.header + signable.body
    return "0x" + keccak(raw).hex()
