"""Private key storage interface and an in-memory implementation."""

from abc import ABC, abstractmethod
from typing import Optional

from ..types import PRIVATE_KEY_SIZE, StorageError


class KeyStore(ABC):
    """
    Interface for persisting the client's private key.

    Implementations decide where and how the raw key bytes are kept
    (keychain, encrypted file, secret manager). The client only loads the key
    at startup and saves a newly generated one.
    """

    @abstractmethod
    async def load(self) -> Optional[bytes]:
        """Return the stored 32-byte private key, or None if nothing is stored."""
        ...

    @abstractmethod
    async def save(self, private_key: bytes) -> None:
        """
        Persist a 32-byte private key, replacing any stored key.

        Raises:
            StorageError: If the key could not be persisted
        """
        ...


class InMemoryKeyStore(KeyStore):
    """
    In-memory implementation of KeyStore (for testing).

    WARNING: This is NOT secure for production use. The key is held in memory
    without encryption and is lost when the process exits.
    """

    def __init__(self, private_key: Optional[bytes] = None) -> None:
        self._key = bytes(private_key) if private_key is not None else None

    async def load(self) -> Optional[bytes]:
        """Return the stored key, if any."""
        return self._key

    async def save(self, private_key: bytes) -> None:
        """Store a key, replacing any previous one."""
        if len(private_key) != PRIVATE_KEY_SIZE:
            raise StorageError(
                f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(private_key)}"
            )
        self._key = bytes(private_key)

    async def clear(self) -> None:
        """Forget the stored key."""
        self._key = None
