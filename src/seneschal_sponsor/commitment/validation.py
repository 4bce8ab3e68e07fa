"""Sponsor form validation - raw form input to CommitmentDraft."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Mapping

from eth_utils import is_address, to_checksum_address

from seneschal_sponsor.errors import ValidationError
from seneschal_sponsor.models.commitment import CommitmentDraft

LOOT_MIN = 0  # exclusive
LOOT_MAX = 100  # exclusive


def validate_form(raw: Mapping[str, Any], now: datetime | None = None) -> CommitmentDraft:
    """Validate the sponsor form and return an immutable draft.

    Accepted keys: ``loot``, ``expirationDate``, ``recipientWallet`` and
    ``proposalUrl``. All field errors are collected and raised together.
    """
    now = now or datetime.now(timezone.utc)
    errors: dict[str, str] = {}

    loot = _parse_loot(raw.get("loot"))
    if loot is None:
        errors["loot"] = "Must be between 1 & 99"

    expiration = _parse_expiration(raw.get("expirationDate"))
    if expiration is None:
        errors["expirationDate"] = "Proposal expiration date required."
    elif expiration <= now:
        errors["expirationDate"] = "Expiration date must be in the future."

    recipient = raw.get("recipientWallet")
    if not isinstance(recipient, str) or not is_address(recipient):
        errors["recipientWallet"] = "Not a valid ethereum address."

    proposal_url = raw.get("proposalUrl")
    if not isinstance(proposal_url, str) or not proposal_url.strip():
        errors["proposalUrl"] = "Proposal url required."

    if errors:
        raise ValidationError(errors)

    return CommitmentDraft(
        loot=loot,  # type: ignore[arg-type]
        expiration=expiration,  # type: ignore[arg-type]
        recipient=to_checksum_address(recipient),
        proposal_url=proposal_url.strip(),  # type: ignore[union-attr]
    )


def _parse_loot(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if not number.is_integer():
        return None
    loot = int(number)
    if not LOOT_MIN < loot < LOOT_MAX:
        return None
    return loot


def _parse_expiration(value: Any) -> datetime | None:
    """Accept aware/naive datetimes, dates and ISO 8601 strings. Naive means UTC."""
    if isinstance(value, str):
        if not value.strip():
            return None
        try:
            value = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    return None
