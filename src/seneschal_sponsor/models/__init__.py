"""Data models for the seneschal_sponsor workflow."""

from seneschal_sponsor.models.commitment import (
    CommitmentDraft,
    CommitmentPayload,
    ConfirmationRecord,
    ContentReference,
    MetadataRecord,
    Signature,
    SponsorContent,
    TransactionHandle,
)
from seneschal_sponsor.models.config import SponsorConfig
from seneschal_sponsor.models.records import (
    ActivityRecord,
    InclusionReceipt,
    LogEntry,
    SubmissionRecord,
)
from seneschal_sponsor.models.workflow import ProgressEvent, WorkflowOutcome, WorkflowState

__all__ = [
    "CommitmentDraft", "CommitmentPayload", "ConfirmationRecord", "ContentReference",
    "MetadataRecord", "Signature", "SponsorContent", "TransactionHandle",
    "SponsorConfig",
    "ActivityRecord", "InclusionReceipt", "LogEntry", "SubmissionRecord",
    "ProgressEvent", "WorkflowOutcome", "WorkflowState",
]
