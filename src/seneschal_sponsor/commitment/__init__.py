"""Commitment building and form validation."""

from seneschal_sponsor.commitment.builder import CommitmentBuilder, signable_message
from seneschal_sponsor.commitment.validation import validate_form

__all__ = ["CommitmentBuilder", "signable_message", "validate_form"]
