"""Seneschal contract ABI fragments used by the sponsor workflow."""

from __future__ import annotations

from seneschal_sponsor.commitment.builder import COMMITMENT_FIELDS

SPONSOR_FUNCTION = "sponsor"

SENESCHAL_ABI: list[dict] = [
    {
        "type": "function",
        "name": SPONSOR_FUNCTION,
        "stateMutability": "nonpayable",
        "inputs": [
            {
                "name": "commitment",
                "type": "tuple",
                "internalType": "struct Commitment",
                "components": [
                    {"name": f["name"], "type": f["type"], "internalType": f["type"]}
                    for f in COMMITMENT_FIELDS
                ],
            },
            {"name": "signature", "type": "bytes", "internalType": "bytes"},
        ],
        "outputs": [],
    },
]
