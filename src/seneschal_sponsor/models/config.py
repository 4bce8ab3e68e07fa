"""Configuration model for the sponsor workflow."""

from __future__ import annotations

from dataclasses import dataclass

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


@dataclass
class SponsorConfig:
    """Complete sponsor configuration."""

    # Sponsor
    log_level: str = "info"
    signature_timeout: int = 300  # seconds the key holder has to answer

    # Chain
    network: str = "gnosis"
    rpc_url: str = "https://rpc.gnosischain.com"
    chain_id: int = 100
    contract_address: str = ""  # Seneschal contract
    private_key: str = ""  # loaded from env var SENESCHAL_SPONSOR_PRIVATE_KEY
    confirmations: int = 1  # blocks including the receipt's own
    confirmation_timeout: int = 300  # seconds
    block_poll_interval: float = 2.0  # seconds
    sponsor_event_topic: str = ""  # optional topic0 filter for the sponsorship event
    explorer_url: str = "https://gnosisscan.io"

    # Commitment
    domain_name: str = "Seneschal"
    domain_version: str = "1.0"
    eligible_hat: int = 0
    loot_decimals: int = 18
    extra_reward_token: str = ZERO_ADDRESS

    # IPFS
    kubo_rpc_url: str = "http://127.0.0.1:5001"
    upload_timeout: int = 60  # seconds
    ipfs_gateway: str = "https://ipfs.io"

    # Storage
    db_path: str = "~/.seneschal_sponsor/state.db"
