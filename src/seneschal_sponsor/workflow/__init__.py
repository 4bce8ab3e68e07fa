"""Commitment submission workflow - stages and orchestrator."""

from seneschal_sponsor.workflow.orchestrator import SponsorWorkflow
from seneschal_sponsor.workflow.stages import (
    ConfirmationStage,
    PersistenceStage,
    PublicationStage,
    SignatureStage,
    SubmissionStage,
)

__all__ = [
    "SponsorWorkflow",
    "ConfirmationStage",
    "PersistenceStage",
    "PublicationStage",
    "SignatureStage",
    "SubmissionStage",
]
