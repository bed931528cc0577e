"""
secp256k1 operations: key derivation, BIP-340 Schnorr and legacy ECDSA.

Schnorr signing, verification and x-only key derivation go through
``coincurve``, the libsecp256k1 binding. ECDSA goes through the
``cryptography`` package's OpenSSL-backed secp256k1 implementation.

Public keys are x-only (32 bytes) throughout. Events are only ever signed with
Schnorr; the ECDSA functions exist for interoperating with legacy signers and
always produce low-S signatures.
"""

import os
from typing import Callable, Optional

import coincurve
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)

from .types import (
    PRIVATE_KEY_SIZE,
    PUBLIC_KEY_SIZE,
    SIGNATURE_SIZE,
    CryptoBackendError,
    InvalidKeyError,
    SigningError,
)

# Curve order and generator x coordinate
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
G_X = 0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798
HALF_N = N // 2

MESSAGE_SIZE = 32
AUX_RAND_SIZE = 32

RandomSource = Callable[[int], bytes]


def _int_from_bytes(data: bytes) -> int:
    return int.from_bytes(data, "big")


def _bytes_from_int(value: int) -> bytes:
    return value.to_bytes(32, "big")


def _scalar_from_private_key(private_key: bytes) -> int:
    if not isinstance(private_key, (bytes, bytearray)):
        raise InvalidKeyError(f"Private key must be bytes, got {type(private_key).__name__}")
    if len(private_key) != PRIVATE_KEY_SIZE:
        raise InvalidKeyError(
            f"Private key must be {PRIVATE_KEY_SIZE} bytes, got {len(private_key)}"
        )
    scalar = _int_from_bytes(private_key)
    if not 1 <= scalar < N:
        raise InvalidKeyError("Private key must be in the range 1..n-1")
    return scalar


class Secp256k1:
    """
    The single secp256k1 provider used by keys and signers.

    The constructor checks that both backends support secp256k1 and derive
    the generator correctly; any failure raises CryptoBackendError instead of
    degrading to another algorithm.

    The random source is only used for key generation and must be
    thread-safe if the instance is shared between threads.

    Example usage:
        ```python
        curve = Secp256k1()
        private_key = curve.generate_private_key()
        public_key = curve.derive_public_key(private_key)
        sig = curve.schnorr_sign(event_id, private_key)
        assert curve.schnorr_verify(event_id, public_key, sig)
        ```
    """

    def __init__(self, random_source: RandomSource = os.urandom) -> None:
        self._random_source = random_source
        self._curve = ec.SECP256K1()
        self._self_check()

    def _self_check(self) -> None:
        one = _bytes_from_int(1)
        try:
            ec.derive_private_key(1, self._curve)
            public_key = self._xonly_public_key(one)
        except (UnsupportedAlgorithm, ValueError) as e:
            raise CryptoBackendError(f"secp256k1 is not available: {e}") from e
        if public_key != _bytes_from_int(G_X):
            raise CryptoBackendError("secp256k1 backend returned a wrong generator point")

    def _xonly_public_key(self, private_key: bytes) -> bytes:
        # Compressed SEC1 form minus the parity byte
        return coincurve.PrivateKey(bytes(private_key)).public_key.format(compressed=True)[1:]

    # MARK: - Keys

    def generate_private_key(self) -> bytes:
        """
        Draw a uniform private key in [1, n-1] from the random source.

        Out-of-range draws are discarded and redrawn.
        """
        while True:
            candidate = self._random_source(PRIVATE_KEY_SIZE)
            if len(candidate) != PRIVATE_KEY_SIZE:
                raise InvalidKeyError(
                    f"Random source returned {len(candidate)} bytes, expected {PRIVATE_KEY_SIZE}"
                )
            if 1 <= _int_from_bytes(candidate) < N:
                return bytes(candidate)

    def derive_public_key(self, private_key: bytes) -> bytes:
        """
        Derive the x-only public key for a private key.

        Raises:
            InvalidKeyError: If the key is not 32 bytes or not in [1, n-1]
        """
        _scalar_from_private_key(private_key)
        return self._xonly_public_key(private_key)

    def is_valid_public_key(self, public_key: bytes) -> bool:
        """Whether the bytes are the x coordinate of a curve point."""
        if not isinstance(public_key, (bytes, bytearray)) or len(public_key) != PUBLIC_KEY_SIZE:
            return False
        try:
            coincurve.PublicKeyXOnly(bytes(public_key))
        except ValueError:
            return False
        return True

    # MARK: - Schnorr (BIP-340)

    def schnorr_sign(
        self,
        message: bytes,
        private_key: bytes,
        aux_rand: Optional[bytes] = None,
    ) -> bytes:
        """
        Create a BIP-340 Schnorr signature over a 32-byte message.

        Without aux_rand the nonce is derived from 32 zero bytes, making the
        signature a deterministic function of key and message.

        Args:
            message: 32-byte message (an event id)
            private_key: 32-byte private key
            aux_rand: Optional 32 bytes of auxiliary randomness

        Returns:
            64-byte signature

        Raises:
            SigningError: On invalid input or a failed signature
        """
        if len(message) != MESSAGE_SIZE:
            raise SigningError(f"Message must be {MESSAGE_SIZE} bytes, got {len(message)}")
        if aux_rand is None:
            aux_rand = bytes(AUX_RAND_SIZE)
        if len(aux_rand) != AUX_RAND_SIZE:
            raise SigningError(
                f"Auxiliary randomness must be {AUX_RAND_SIZE} bytes, got {len(aux_rand)}"
            )
        try:
            _scalar_from_private_key(private_key)
        except InvalidKeyError as e:
            raise SigningError(f"Cannot sign with invalid private key: {e}") from e

        key = coincurve.PrivateKey(bytes(private_key))
        try:
            signature = key.sign_schnorr(bytes(message), bytes(aux_rand))
        except ValueError as e:
            raise SigningError(f"Schnorr signing failed: {e}") from e

        pubkey = key.public_key.format(compressed=True)[1:]
        if not self.schnorr_verify(message, pubkey, signature):
            raise SigningError("Produced signature failed verification")
        return signature

    def schnorr_verify(self, message: bytes, public_key: bytes, signature: bytes) -> bool:
        """
        Verify a BIP-340 Schnorr signature.

        Malformed input and all-zero signatures return False; this never raises.
        """
        if not all(isinstance(v, (bytes, bytearray)) for v in (message, public_key, signature)):
            return False
        if len(message) != MESSAGE_SIZE or len(public_key) != PUBLIC_KEY_SIZE:
            return False
        if len(signature) != SIGNATURE_SIZE or not any(signature):
            return False
        try:
            verifying_key = coincurve.PublicKeyXOnly(bytes(public_key))
            return bool(verifying_key.verify(bytes(signature), bytes(message)))
        except ValueError:
            return False

    # MARK: - Legacy ECDSA

    def ecdsa_sign(self, digest: bytes, private_key: bytes) -> bytes:
        """
        Sign a 32-byte digest with ECDSA, returning a low-S ``r || s`` signature.

        s is replaced with n - s whenever it lies in the upper half of the
        curve order.

        Raises:
            SigningError: On invalid key or digest
        """
        if len(digest) != MESSAGE_SIZE:
            raise SigningError(f"Digest must be {MESSAGE_SIZE} bytes, got {len(digest)}")
        try:
            scalar = _scalar_from_private_key(private_key)
        except InvalidKeyError as e:
            raise SigningError(f"Cannot sign with invalid private key: {e}") from e

        key = ec.derive_private_key(scalar, self._curve)
        der = key.sign(bytes(digest), ec.ECDSA(Prehashed(hashes.SHA256())))
        r, s = decode_dss_signature(der)
        if s > HALF_N:
            s = N - s
        return _bytes_from_int(r) + _bytes_from_int(s)

    def ecdsa_verify(self, digest: bytes, signature: bytes, public_key: bytes) -> bool:
        """
        Verify a low-S ECDSA signature.

        public_key may be x-only (32 bytes, even y assumed) or SEC1 compressed
        (33 bytes). High-S signatures are rejected as non-canonical.
        """
        if len(digest) != MESSAGE_SIZE or len(signature) != SIGNATURE_SIZE:
            return False
        r = _int_from_bytes(signature[:32])
        s = _int_from_bytes(signature[32:])
        if not (1 <= r < N and 1 <= s <= HALF_N):
            return False

        if len(public_key) == PUBLIC_KEY_SIZE:
            encoded = b"\x02" + bytes(public_key)
        elif len(public_key) == PUBLIC_KEY_SIZE + 1:
            encoded = bytes(public_key)
        else:
            return False
        try:
            verifying_key = ec.EllipticCurvePublicKey.from_encoded_point(self._curve, encoded)
            verifying_key.verify(
                encode_dss_signature(r, s),
                bytes(digest),
                ec.ECDSA(Prehashed(hashes.SHA256())),
            )
        except (InvalidSignature, ValueError):
            return False
        return True
