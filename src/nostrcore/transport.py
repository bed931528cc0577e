"""
Relay transports.

A Transport carries text frames over one connection. Sessions create a fresh
transport for every connection attempt, so implementations never need to
support reconnecting.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Union

import websockets
from websockets.exceptions import WebSocketException

from .types import TransportError

logger = logging.getLogger(__name__)

Frame = Union[str, bytes]


class Transport(ABC):
    """
    Abstract interface for a single relay connection.

    Every method raises TransportError on failure.
    """

    @abstractmethod
    async def connect(self, url: str) -> None:
        """Open the connection."""
        ...

    @abstractmethod
    async def send(self, frame: str) -> None:
        """Send one text frame."""
        ...

    @abstractmethod
    async def receive(self) -> Frame:
        """Wait for the next frame. Raises TransportError once the connection is gone."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        ...

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether frames can currently be sent."""
        ...


class WebSocketTransport(Transport):
    """Transport backed by the ``websockets`` client."""

    def __init__(self, **connect_kwargs) -> None:
        self._connect_kwargs = connect_kwargs
        self._ws = None
        self._closed = False
        self._url: Optional[str] = None

    async def connect(self, url: str) -> None:
        self._url = url
        try:
            self._ws = await websockets.connect(url, **self._connect_kwargs)
        except (WebSocketException, OSError) as e:
            raise TransportError(f"Failed to connect to {url}: {e}") from e
        self._closed = False
        logger.debug("WebSocket connected to %s", url)

    async def send(self, frame: str) -> None:
        if self._ws is None or self._closed:
            raise TransportError("Transport is not connected")
        try:
            await self._ws.send(frame)
        except (WebSocketException, OSError) as e:
            self._closed = True
            raise TransportError(f"Send to {self._url} failed: {e}") from e

    async def receive(self) -> Frame:
        if self._ws is None or self._closed:
            raise TransportError("Transport is not connected")
        try:
            return await self._ws.recv()
        except (WebSocketException, OSError) as e:
            self._closed = True
            raise TransportError(f"Receive from {self._url} failed: {e}") from e

    async def close(self) -> None:
        if self._ws is None or self._closed:
            self._closed = True
            return
        self._closed = True
        try:
            await self._ws.close()
        except (WebSocketException, OSError) as e:
            raise TransportError(f"Close of {self._url} failed: {e}") from e
        finally:
            self._ws = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed
