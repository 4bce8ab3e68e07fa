"""Sponsor form validation."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from seneschal_sponsor.commitment.validation import validate_form
from seneschal_sponsor.errors import ValidationError

from tests.factories import NOW, PROPOSAL_URL, RECIPIENT, make_form


def test_valid_form_builds_draft():
    draft = validate_form(make_form(), now=NOW)

    assert draft.loot == 50
    assert draft.recipient == RECIPIENT
    assert draft.proposal_url == PROPOSAL_URL
    assert draft.expiration == NOW + timedelta(days=7)


def test_lowercase_recipient_is_checksummed():
    draft = validate_form(make_form(recipientWallet=RECIPIENT.lower()), now=NOW)
    assert draft.recipient == RECIPIENT


def test_malformed_recipient_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_form(make_form(recipientWallet="not-an-address"), now=NOW)
    assert exc_info.value.errors == {"recipientWallet": "Not a valid ethereum address."}


@pytest.mark.parametrize("loot", ["0", "100", "-3", "1.5", "abc", "", None, True])
def test_loot_out_of_range_rejected(loot):
    with pytest.raises(ValidationError) as exc_info:
        validate_form(make_form(loot=loot), now=NOW)
    assert exc_info.value.errors["loot"] == "Must be between 1 & 99"


@pytest.mark.parametrize("loot,expected", [("1", 1), ("99", 99), (42, 42), ("7.0", 7)])
def test_loot_bounds_accepted(loot, expected):
    assert validate_form(make_form(loot=loot), now=NOW).loot == expected


def test_past_expiration_rejected():
    past = (NOW - timedelta(minutes=1)).isoformat()
    with pytest.raises(ValidationError) as exc_info:
        validate_form(make_form(expirationDate=past), now=NOW)
    assert exc_info.value.errors["expirationDate"] == "Expiration date must be in the future."


def test_missing_expiration_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_form(make_form(expirationDate=""), now=NOW)
    assert exc_info.value.errors["expirationDate"] == "Proposal expiration date required."


def test_expiration_accepts_date_and_naive_datetime():
    as_date = validate_form(make_form(expirationDate=date(2026, 11, 1)), now=NOW)
    naive = validate_form(make_form(expirationDate=datetime(2026, 11, 1)), now=NOW)

    assert as_date.expiration == datetime(2026, 11, 1, tzinfo=timezone.utc)
    assert naive.expiration == as_date.expiration


def test_missing_proposal_url_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_form(make_form(proposalUrl="   "), now=NOW)
    assert exc_info.value.errors == {"proposalUrl": "Proposal url required."}


def test_all_errors_reported_together():
    form = {"loot": "0", "expirationDate": "", "recipientWallet": "0x12", "proposalUrl": ""}
    with pytest.raises(ValidationError) as exc_info:
        validate_form(form, now=NOW)
    assert set(exc_info.value.errors) == {"loot", "expirationDate", "recipientWallet", "proposalUrl"}
