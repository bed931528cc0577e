"""Type definitions and protocol constants for nostrcore."""

# Key and event sizes
PRIVATE_KEY_SIZE = 32
PUBLIC_KEY_SIZE = 32
EVENT_ID_SIZE = 32
SIGNATURE_SIZE = 64

# Bech32 human-readable prefixes
NPUB_PREFIX = "npub"
NSEC_PREFIX = "nsec"
NOTE_PREFIX = "note"

# Event limits
MAX_CONTENT_SIZE = 64 * 1024  # bytes, UTF-8 encoded
MAX_KIND = 0xFFFF

# Client message tags (client -> relay)
CLIENT_EVENT = "EVENT"
CLIENT_REQ = "REQ"
CLIENT_CLOSE = "CLOSE"

# Relay message tags (relay -> client)
RELAY_EVENT = "EVENT"
RELAY_EOSE = "EOSE"
RELAY_NOTICE = "NOTICE"
RELAY_OK = "OK"
RELAY_CLOSED = "CLOSED"
RELAY_AUTH = "AUTH"

# Well-known public relays
DEFAULT_RELAYS = (
    "wss://relay.damus.io",
    "wss://nos.lol",
    "wss://relay.nostr.band",
)


# Exception types
class NostrError(Exception):
    """Base exception for nostrcore errors."""
    pass


class InvalidKeyError(NostrError):
    """Private scalar or public point is malformed or out of range."""
    pass


class SigningError(NostrError):
    """Signature generation failed."""
    pass


class CryptoBackendError(NostrError):
    """The elliptic curve backend is unavailable or misbehaving."""
    pass


class Bech32Error(NostrError):
    """Bech32 encoding or decoding failed."""
    pass


class FormatError(Bech32Error):
    """Malformed Bech32 or hex input."""
    pass


class ChecksumError(Bech32Error):
    """Bech32 checksum does not match."""
    pass


class InvalidEventError(NostrError):
    """Event is structurally invalid."""
    pass


class TransportError(NostrError):
    """Connecting, sending or receiving on a relay transport failed."""
    pass


class ProtocolError(NostrError):
    """A relay sent a frame that is not a valid protocol message."""
    pass


class StorageError(NostrError):
    """Key storage operation failed."""
    pass


class RelayNotFoundError(NostrError):
    """No session exists for the given relay URL."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"Relay not found: {url}")
