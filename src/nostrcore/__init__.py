"""
nostrcore - Client engine for signed-event relay networks

Python implementation of key handling, BIP-340 event signing and relay
sessions with verified delivery.
"""

import logging

from .codec import (
    encode_hex,
    decode_hex,
    bech32_encode,
    bech32_decode,
    encode_npub,
    decode_npub,
    encode_nsec,
    decode_nsec,
    encode_note,
    decode_note,
    parse_public_key,
)
from .curve import Secp256k1
from .keys import KeyPair
from .event import Event, EventKind, compute_event_id, serialize_for_id, validate_event
from .signature import Signer
from .filters import Filter
from .types import (
    PRIVATE_KEY_SIZE,
    PUBLIC_KEY_SIZE,
    EVENT_ID_SIZE,
    SIGNATURE_SIZE,
    MAX_CONTENT_SIZE,
    DEFAULT_RELAYS,
    NostrError,
    InvalidKeyError,
    SigningError,
    CryptoBackendError,
    Bech32Error,
    FormatError,
    ChecksumError,
    InvalidEventError,
    TransportError,
    ProtocolError,
    StorageError,
    RelayNotFoundError,
)
from .models import (
    RelayState,
    PublishStatus,
    PublishOutcome,
    PublishResult,
    PublishSummary,
)
from .storage import (
    KeyStore,
    InMemoryKeyStore,
)
from .sink import (
    EventSink,
    NullEventSink,
)
from .transport import (
    Transport,
    WebSocketTransport,
)
from .registry import (
    Subscription,
    SubscriptionRegistry,
)
from .session import (
    RelayConfig,
    RelaySession,
)
from .client import (
    ClientConfig,
    NostrClient,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # Codec
    "encode_hex",
    "decode_hex",
    "bech32_encode",
    "bech32_decode",
    "encode_npub",
    "decode_npub",
    "encode_nsec",
    "decode_nsec",
    "encode_note",
    "decode_note",
    "parse_public_key",
    # Keys
    "Secp256k1",
    "KeyPair",
    # Events
    "Event",
    "EventKind",
    "compute_event_id",
    "serialize_for_id",
    "validate_event",
    "Signer",
    "Filter",
    # Constants
    "PRIVATE_KEY_SIZE",
    "PUBLIC_KEY_SIZE",
    "EVENT_ID_SIZE",
    "SIGNATURE_SIZE",
    "MAX_CONTENT_SIZE",
    "DEFAULT_RELAYS",
    # Errors
    "NostrError",
    "InvalidKeyError",
    "SigningError",
    "CryptoBackendError",
    "Bech32Error",
    "FormatError",
    "ChecksumError",
    "InvalidEventError",
    "TransportError",
    "ProtocolError",
    "StorageError",
    "RelayNotFoundError",
    # Models
    "RelayState",
    "PublishStatus",
    "PublishOutcome",
    "PublishResult",
    "PublishSummary",
    # Collaborators
    "KeyStore",
    "InMemoryKeyStore",
    "EventSink",
    "NullEventSink",
    "Transport",
    "WebSocketTransport",
    # Relays
    "Subscription",
    "SubscriptionRegistry",
    "RelayConfig",
    "RelaySession",
    # Client
    "ClientConfig",
    "NostrClient",
]
