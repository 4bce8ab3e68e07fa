"""Local-key signer - EIP-712 signatures with an eth-account LocalAccount."""

from __future__ import annotations

import logging
from typing import Any

from eth_account import Account
from eth_account.messages import encode_typed_data

log = logging.getLogger(__name__)


class LocalKeySigner:
    """Signs typed data with a private key held in process."""

    def __init__(self, private_key: str) -> None:
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def account(self):
        return self._account

    async def sign_typed_data(self, full_message: dict[str, Any]) -> bytes:
        signable = encode_typed_data(full_message=full_message)
        signed = self._account.sign_message(signable)
        log.debug("Signed %s for %s", full_message.get("primaryType"), self.address)
        return bytes(signed.signature)
