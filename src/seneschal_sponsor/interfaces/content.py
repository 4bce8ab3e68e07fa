"""ContentStore protocol - content-addressed uploads."""

from __future__ import annotations

from typing import Protocol


class ContentStore(Protocol):
    """Content-addressed store. Uploading identical bytes yields the same CID."""

    async def upload(self, data: bytes, filename: str = "data") -> str:
        """Add and pin ``data``, returning its CID."""
        ...
