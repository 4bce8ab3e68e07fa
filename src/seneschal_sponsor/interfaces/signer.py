"""Signer protocol - holder of the sponsor's signing key."""

from __future__ import annotations

from typing import Any, Protocol


class Signer(Protocol):
    """Produces EIP-712 typed-data signatures on behalf of the sponsor."""

    @property
    def address(self) -> str:
        """Checksummed address of the signing key."""
        ...

    async def sign_typed_data(self, full_message: dict[str, Any]) -> bytes:
        """Sign a {domain, types, message, primaryType} descriptor.

        Raises SignatureDeclined when the key holder refuses.
        """
        ...
