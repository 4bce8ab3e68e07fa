"""Configuration loading: TOML file + environment variables + deployments.json."""

from __future__ import annotations

import json
import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from seneschal_sponsor.models.config import SponsorConfig

CHAIN_IDS = {
    "gnosis": 100,
    "chiado": 10200,
    "sepolia": 11155111,
}


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "SENESCHAL_SPONSOR_",
) -> SponsorConfig:
    """Load sponsor configuration from TOML file, env vars, and deployments.json.

    Priority (highest wins):
        1. Environment variables (SENESCHAL_SPONSOR_PRIVATE_KEY, etc.)
        2. TOML config file
        3. Defaults from SponsorConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = SponsorConfig()

    # ── Sponsor section ────────────────────────────────────
    sponsor = raw.get("sponsor", {})
    if v := sponsor.get("log_level"):
        cfg.log_level = str(v)
    if v := sponsor.get("signature_timeout"):
        cfg.signature_timeout = int(v)

    # ── Chain section ──────────────────────────────────────
    chain = raw.get("chain", {})
    if v := chain.get("network"):
        cfg.network = str(v)
        cfg.chain_id = CHAIN_IDS.get(cfg.network, cfg.chain_id)
    if v := chain.get("chain_id"):
        cfg.chain_id = int(v)
    if v := chain.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := chain.get("contract_address"):
        cfg.contract_address = str(v)
    if v := chain.get("private_key"):
        cfg.private_key = str(v)
    if v := chain.get("confirmations"):
        cfg.confirmations = int(v)
    if v := chain.get("confirmation_timeout"):
        cfg.confirmation_timeout = int(v)
    if v := chain.get("block_poll_interval"):
        cfg.block_poll_interval = float(v)
    if v := chain.get("sponsor_event_topic"):
        cfg.sponsor_event_topic = str(v)
    if v := chain.get("explorer_url"):
        cfg.explorer_url = str(v)

    # ── Commitment section ─────────────────────────────────
    commitment = raw.get("commitment", {})
    if v := commitment.get("domain_name"):
        cfg.domain_name = str(v)
    if v := commitment.get("domain_version"):
        cfg.domain_version = str(v)
    if v := commitment.get("eligible_hat"):
        cfg.eligible_hat = int(v)
    if (v := commitment.get("loot_decimals")) is not None:
        cfg.loot_decimals = int(v)
    if v := commitment.get("extra_reward_token"):
        cfg.extra_reward_token = str(v)

    # ── IPFS section ───────────────────────────────────────
    ipfs = raw.get("ipfs", {})
    if v := ipfs.get("kubo_rpc_url"):
        cfg.kubo_rpc_url = str(v)
    if v := ipfs.get("upload_timeout"):
        cfg.upload_timeout = int(v)
    if v := ipfs.get("gateway"):
        cfg.ipfs_gateway = str(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Environment variable overrides (highest priority) ──
    if key := os.environ.get(f"{env_prefix}PRIVATE_KEY"):
        cfg.private_key = key
    if rpc := os.environ.get(f"{env_prefix}RPC_URL"):
        cfg.rpc_url = rpc
    if chain_id := os.environ.get(f"{env_prefix}CHAIN_ID"):
        cfg.chain_id = int(chain_id)
    if address := os.environ.get(f"{env_prefix}CONTRACT_ADDRESS"):
        cfg.contract_address = address
    if kubo := os.environ.get(f"{env_prefix}KUBO_RPC_URL"):
        cfg.kubo_rpc_url = kubo

    # Contract address from deployments.json if not explicitly set
    if not cfg.contract_address:
        _load_deployments(cfg, chain.get("deployments_path", "deployments.json"))

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg


def _load_deployments(cfg: SponsorConfig, deployments_path: str) -> None:
    """Load the Seneschal address for cfg.chain_id from a deployments.json.

    Expected shape: {"<chain_id>": {"seneschal": "0x..."}}.
    """
    p = Path(deployments_path).expanduser()
    if not p.is_absolute():
        p = Path.cwd() / p
    if not p.exists():
        return

    with open(p) as f:
        data = json.load(f)

    network = data.get(str(cfg.chain_id), {})
    if address := network.get("seneschal"):
        cfg.contract_address = address
