"""Exception taxonomy for the sponsorship workflow."""

from __future__ import annotations


class SponsorError(Exception):
    """Base class for every error raised by seneschal_sponsor."""

    recoverable: bool = False


# ── Pre-workflow ───────────────────────────────────────


class ValidationError(SponsorError):
    """Form input is not a valid commitment draft. Caller-correctable."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        detail = "; ".join(f"{k}: {v}" for k, v in sorted(self.errors.items()))
        super().__init__(f"invalid commitment draft ({detail})")


class PreconditionError(SponsorError):
    """submit() was called without the inputs it requires."""


class WorkflowBusy(SponsorError):
    """A run is already in flight on this orchestrator."""


# ── Stage errors ───────────────────────────────────────


class SignatureRejected(SponsorError):
    """The signer declined or the signature request errored."""


class SignatureDeclined(SignatureRejected):
    """Raised by signer implementations when the key holder says no."""


class SubmissionRejected(SponsorError):
    """The contract call was refused, reverted, or paired with a foreign signature."""


class SubmissionUncertain(SponsorError):
    """The signed transaction may or may not have reached the node.

    Carries the locally computed hash so the run can track it instead of
    signing and sending again.
    """

    recoverable = True

    def __init__(self, tx_hash: str, reason: str) -> None:
        self.tx_hash = tx_hash
        super().__init__(f"broadcast of {tx_hash} unconfirmed: {reason}")


class ConfirmationTimeout(SponsorError):
    """The transaction did not finalize within the horizon. It may still confirm."""

    recoverable = True

    def __init__(self, tx_hash: str, timeout: float) -> None:
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"tx {tx_hash} not finalized after {timeout:g}s")


class ConfirmationParseError(SponsorError):
    """The receipt does not carry the sponsorship event in the expected shape."""


class PublicationError(SponsorError):
    """Uploading the metadata bundle to IPFS failed."""

    recoverable = True


class PersistenceError(SponsorError):
    """Writing the metadata record failed. The on-chain commitment is intact."""

    recoverable = True


class LinkageError(SponsorError):
    """A confirmation does not belong to the payload signed in this run."""


class WorkflowCancelled(SponsorError):
    """The caller cancelled the run; resume by submitting the same draft again."""

    recoverable = True
