"""Sponsor service - wires all components together from configuration."""

from __future__ import annotations

import logging
from typing import Callable

from seneschal_sponsor.evm.chain import Web3ChainClient
from seneschal_sponsor.evm.signer import LocalKeySigner
from seneschal_sponsor.ipfs.client import KuboContentStore
from seneschal_sponsor.models.commitment import CommitmentDraft, SponsorContent
from seneschal_sponsor.models.config import SponsorConfig
from seneschal_sponsor.models.workflow import ProgressEvent, WorkflowOutcome
from seneschal_sponsor.storage.sqlite import SQLiteStateStore
from seneschal_sponsor.workflow.orchestrator import SponsorWorkflow

log = logging.getLogger(__name__)


class SponsorService:
    """Owns the live collaborators of a sponsor session.

    The signer key, chain client, Kubo client and state store are built
    once from configuration and handed to a SponsorWorkflow.
    """

    def __init__(self, cfg: SponsorConfig) -> None:
        self._cfg = cfg

        self.signer = LocalKeySigner(cfg.private_key)
        self.store = SQLiteStateStore(cfg.db_path)
        self.chain = Web3ChainClient(
            cfg.rpc_url,
            cfg.chain_id,
            self.signer.account,
            poll_latency=cfg.block_poll_interval,
        )
        self.content_store = KuboContentStore(cfg.kubo_rpc_url, cfg.upload_timeout)
        self.workflow = SponsorWorkflow.from_collaborators(
            cfg,
            signer=self.signer,
            chain=self.chain,
            content_store=self.content_store,
            store=self.store,
        )

    @property
    def address(self) -> str:
        return self.signer.address

    async def start(self) -> None:
        log.info("Starting seneschal_sponsor")
        log.info("  Sponsor:  %s", self.signer.address)
        log.info("  Contract: %s (chain %d)", self._cfg.contract_address, self._cfg.chain_id)
        log.info("  RPC:      %s", self._cfg.rpc_url)
        log.info("  Kubo:     %s", self._cfg.kubo_rpc_url)
        await self.store.initialize()

    async def close(self) -> None:
        try:
            await self.chain.close()
        finally:
            await self.store.close()
        log.info("Sponsor service shut down cleanly")

    async def __aenter__(self) -> SponsorService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


async def run_sponsorship(
    cfg: SponsorConfig,
    draft: CommitmentDraft,
    content: SponsorContent,
    on_progress: Callable[[ProgressEvent], None] | None = None,
) -> WorkflowOutcome:
    """Entry point for a single sponsorship run."""
    async with SponsorService(cfg) as service:
        return await service.workflow.run(draft, content, on_progress=on_progress)
