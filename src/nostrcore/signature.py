"""
Event signing and verification.

This module signs event ids with BIP-340 Schnorr signatures over x-only
secp256k1 keys and verifies inbound events. Verification recomputes the id
from the event body, so a relay cannot substitute content under a valid
signature.
"""

import dataclasses
import logging
from typing import Iterable, Optional, Sequence

from .curve import Secp256k1
from .event import Event, compute_event_id
from .keys import KeyPair, default_curve
from .types import EVENT_ID_SIZE, SigningError

logger = logging.getLogger(__name__)


class Signer:
    """
    Signs and verifies events with a single curve provider.

    Example usage:
        ```python
        signer = Signer()
        keypair = KeyPair.generate()
        event = Event.create(keypair.public_key, "hello")
        signed = signer.sign(event, keypair)
        assert signer.verify(signed)
        ```
    """

    def __init__(self, curve: Optional[Secp256k1] = None) -> None:
        self.curve = curve or default_curve()

    def compute_event_id(
        self,
        pubkey: bytes,
        created_at: int,
        kind: int,
        tags: Iterable[Sequence[str]],
        content: str,
    ) -> bytes:
        """Returns the SHA-256 id of the canonical serialization."""
        return compute_event_id(pubkey, created_at, kind, tags, content)

    def sign_event_id(
        self,
        event_id: bytes,
        private_key: bytes,
        aux_rand: Optional[bytes] = None,
    ) -> bytes:
        """
        Sign a 32-byte event id.

        Args:
            event_id: The event id to sign (32 bytes)
            private_key: The signing key (32 bytes)
            aux_rand: Optional auxiliary randomness (32 bytes)

        Returns:
            The Schnorr signature (64 bytes)

        Raises:
            SigningError: If the id or key is invalid
        """
        if len(event_id) != EVENT_ID_SIZE:
            raise SigningError(f"Event id must be {EVENT_ID_SIZE} bytes, got {len(event_id)}")
        return self.curve.schnorr_sign(event_id, private_key, aux_rand)

    def verify_event_signature(self, event_id: bytes, signature: bytes, pubkey: bytes) -> bool:
        """Verify a signature over an event id. Returns False on any malformed input."""
        return self.curve.schnorr_verify(event_id, pubkey, signature)

    def sign(self, event: Event, keypair: KeyPair, aux_rand: Optional[bytes] = None) -> Event:
        """
        Sign an event, returning a new event with id and sig set.

        Raises:
            SigningError: If the event's pubkey is not the keypair's public key
        """
        if event.pubkey != keypair.public_key:
            raise SigningError("Event pubkey does not match the signing key")
        event_id = event.compute_id()
        sig = self.sign_event_id(event_id, keypair.private_key, aux_rand)
        return dataclasses.replace(event, id=event_id, sig=sig)

    def verify(self, event: Event) -> bool:
        """
        Check that the event's id matches its body and that the signature is valid.

        Never raises; unsigned or tampered events return False.
        """
        if event.id is None or event.sig is None:
            return False
        if event.compute_id() != event.id:
            logger.debug("Event id mismatch for %s", event.id.hex())
            return False
        return self.verify_event_signature(event.id, event.sig, event.pubkey)
