"""Kubo content store - adds and pins bytes via the Kubo HTTP RPC."""

from __future__ import annotations

import logging
import time

import httpx

from seneschal_sponsor.errors import PublicationError

log = logging.getLogger(__name__)


class KuboContentStore:
    """Content-addressed uploads against a Kubo node.

    Uses the Kubo HTTP RPC API at /api/v0/ for:
    - add: store and pin bytes, returning the CID
    - pin/ls: check whether a CID is pinned
    Adding identical bytes twice returns the same CID, so retries are safe.
    """

    def __init__(
        self,
        kubo_rpc_url: str = "http://127.0.0.1:5001",
        upload_timeout: int = 60,
        upload_retries: int = 3,
    ) -> None:
        self._base_url = kubo_rpc_url.rstrip("/")
        self._upload_timeout = upload_timeout
        self._upload_retries = max(1, upload_retries)

    def _url(self, endpoint: str) -> str:
        return f"{self._base_url}/api/v0/{endpoint}"

    async def upload(self, data: bytes, filename: str = "data") -> str:
        """Add ``data`` to Kubo (pinned) and return its CID.

        Timeouts and 5xx responses are retried; anything else raises
        PublicationError immediately.
        """
        start = time.monotonic()
        for attempt in range(1, self._upload_retries + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self._upload_timeout, connect=10),
                ) as client:
                    resp = await client.post(
                        self._url("add"),
                        params={
                            "cid-version": "1",
                            "hash": "sha2-256",
                            "pin": "true",
                        },
                        files={"file": (filename, data)},
                    )
                    resp.raise_for_status()
                    add_data = resp.json()
                break

            except (httpx.TimeoutException, httpx.HTTPStatusError) as exc:
                retryable = isinstance(exc, httpx.TimeoutException) or (
                    isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500
                )
                if retryable and attempt < self._upload_retries:
                    log.warning(
                        "Kubo add failed for %s (attempt %d/%d): %s",
                        filename, attempt, self._upload_retries, exc,
                    )
                    continue
                if isinstance(exc, httpx.HTTPStatusError):
                    error_msg = f"kubo HTTP {exc.response.status_code}"
                else:
                    error_msg = f"kubo timeout after {self._upload_retries} attempts"
                log.error("Upload of %s failed: %s", filename, error_msg)
                raise PublicationError(error_msg) from exc

            except (httpx.HTTPError, ValueError) as exc:
                log.error("Upload of %s failed: %s", filename, exc)
                raise PublicationError(f"kubo_add: {exc}") from exc

        cid = add_data.get("Hash", "")
        if not cid:
            raise PublicationError(f"kubo_add: no Hash in response for {filename}")

        duration = int((time.monotonic() - start) * 1000)
        log.info(
            "Uploaded %s as %s (%s bytes) in %dms",
            filename, cid, add_data.get("Size", "?"), duration,
        )
        return cid

    async def verify_pinned(self, cid: str) -> bool:
        """Check if a CID is pinned on the node."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    self._url("pin/ls"),
                    params={"arg": cid, "type": "recursive"},
                )
                if resp.status_code == 200:
                    data = resp.json()
                    return cid in data.get("Keys", {})
                return False
        except httpx.HTTPError as exc:
            log.warning("verify_pinned(%s) failed: %s", cid, exc)
            return False
