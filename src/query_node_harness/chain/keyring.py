"""In-memory keyring: resolves SS58 addresses to signing keypairs."""
from __future__ import annotations

import threading
from typing import Any, Dict


def _keypair_from_uri(uri: str):
    from substrateinterface import Keypair  # local import for testability

    return Keypair.create_from_uri(uri)


class Keyring:
    """Keypairs created from dev derivation URIs (``//Alice``, ``//member//1``)."""

    def __init__(self) -> None:
        self._pairs: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def add_from_uri(self, uri: str) -> str:
        """Derive a keypair from ``uri`` and return its SS58 address."""
        pair = _keypair_from_uri(uri)
        with self._lock:
            self._pairs[pair.ss58_address] = pair
        return pair.ss58_address

    def get_pair(self, address: str):
        try:
            return self._pairs[address]
        except KeyError:
            raise KeyError(f"No keypair in keyring for account {address}") from None

    def __contains__(self, address: str) -> bool:
        return address in self._pairs

    def __len__(self) -> int:
        return len(self._pairs)
