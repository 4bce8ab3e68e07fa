"""EVM integration components."""

from seneschal_sponsor.evm.chain import Web3ChainClient
from seneschal_sponsor.evm.signer import LocalKeySigner

__all__ = ["Web3ChainClient", "LocalKeySigner"]
