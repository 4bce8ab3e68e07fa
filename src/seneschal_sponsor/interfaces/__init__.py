"""Protocol interfaces for all seneschal_sponsor collaborators."""

from seneschal_sponsor.interfaces.chain import ChainClient
from seneschal_sponsor.interfaces.content import ContentStore
from seneschal_sponsor.interfaces.signer import Signer
from seneschal_sponsor.interfaces.store import MetadataStore, StateStore, SubmissionLedger

__all__ = [
    "ChainClient",
    "ContentStore",
    "Signer",
    "MetadataStore", "StateStore", "SubmissionLedger",
]
