"""
Key pairs for signing events.

A KeyPair wraps a secp256k1 private scalar with its x-only public key. Key
material can be generated, imported from hex or nsec, or loaded through a
KeyStore by the client.
"""

from dataclasses import dataclass, field
from typing import Optional

from .codec import decode_hex, decode_nsec, encode_hex, encode_npub, encode_nsec
from .curve import Secp256k1
from .types import PRIVATE_KEY_SIZE, FormatError, InvalidKeyError

_default_curve: Optional[Secp256k1] = None


def default_curve() -> Secp256k1:
    """Returns the shared curve instance, creating it on first use."""
    global _default_curve
    if _default_curve is None:
        _default_curve = Secp256k1()
    return _default_curve


@dataclass(frozen=True)
class KeyPair:
    """
    A secp256k1 key pair.

    Attributes:
        private_key: 32-byte private scalar in [1, n-1]. Excluded from repr.
        public_key: 32-byte x-only public key (x coordinate of private_key * G).
    """

    private_key: bytes = field(repr=False)
    public_key: bytes

    @classmethod
    def generate(cls, curve: Optional[Secp256k1] = None) -> "KeyPair":
        """Generate a fresh key pair from the curve's random source."""
        curve = curve or default_curve()
        private_key = curve.generate_private_key()
        return cls(private_key=private_key, public_key=curve.derive_public_key(private_key))

    @classmethod
    def from_private_key(
        cls,
        private_key: bytes,
        curve: Optional[Secp256k1] = None,
    ) -> "KeyPair":
        """
        Create a key pair from raw private key bytes.

        Raises:
            InvalidKeyError: If the key is not 32 bytes or not in [1, n-1].
        """
        curve = curve or default_curve()
        private_key = bytes(private_key)
        return cls(private_key=private_key, public_key=curve.derive_public_key(private_key))

    @classmethod
    def from_hex(cls, value: str, curve: Optional[Secp256k1] = None) -> "KeyPair":
        """Create a key pair from a 64-character hex private key."""
        try:
            private_key = decode_hex(value, PRIVATE_KEY_SIZE)
        except FormatError as e:
            raise InvalidKeyError(f"Invalid hex private key: {e}") from e
        return cls.from_private_key(private_key, curve)

    @classmethod
    def from_nsec(cls, value: str, curve: Optional[Secp256k1] = None) -> "KeyPair":
        """
        Create a key pair from an nsec string.

        Raises:
            FormatError: Malformed or wrongly prefixed Bech32.
            ChecksumError: Bech32 checksum mismatch.
            InvalidKeyError: Decoded scalar out of range.
        """
        return cls.from_private_key(decode_nsec(value), curve)

    @property
    def public_key_hex(self) -> str:
        """The public key as lowercase hex."""
        return encode_hex(self.public_key)

    @property
    def private_key_hex(self) -> str:
        """The private key as lowercase hex."""
        return encode_hex(self.private_key)

    @property
    def npub(self) -> str:
        """The public key as npub."""
        return encode_npub(self.public_key)

    @property
    def nsec(self) -> str:
        """The private key as nsec."""
        return encode_nsec(self.private_key)
