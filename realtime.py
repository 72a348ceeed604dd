"""
Live bid feed for a single auction over WebSocket.

The connection carries no credentials. When it drops, the feed reconnects
after a fixed delay, forever: no attempt cap, no backoff, and no difference
between a server-side close and a network failure. Only close() stops it.
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from pydantic import ValidationError

from schemas import Bid, WireModel

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = 3.0


class BidMessage(WireModel):
    """Envelope pushed by the auction room"""
    action: str = ""
    type: Optional[str] = None
    auction_id: Optional[str] = None
    bid: Optional[Bid] = None
    current_bid: Optional[float] = None
    data: Any = None


class BidFeed:
    def __init__(
        self,
        auction_id: str,
        ws_url: str,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
        on_message: Optional[Callable[[BidMessage], Awaitable[None]]] = None,
    ):
        self.auction_id = auction_id
        self.ws_url = ws_url
        self.reconnect_delay = reconnect_delay
        self.on_message = on_message
        self.connected = False
        self.last_message: Optional[BidMessage] = None
        self.attempts = 0
        self._connect = connect or self._aiohttp_connect
        self._http: Optional[aiohttp.ClientSession] = None
        self._ws = None
        self._stop = asyncio.Event()

    @property
    def url(self) -> str:
        return f"{self.ws_url}?auctionId={self.auction_id}"

    @property
    def enabled(self) -> bool:
        return bool(self.ws_url and self.auction_id)

    async def _aiohttp_connect(self, url: str) -> aiohttp.ClientWebSocketResponse:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return await self._http.ws_connect(url)

    async def run(self) -> None:
        if not self.enabled:
            logger.info("Live bids disabled for auction %r (no WebSocket URL)", self.auction_id)
            return

        while not self._stop.is_set():
            self.attempts += 1
            try:
                await self._listen()
            except (aiohttp.ClientError, OSError) as e:
                logger.error("WebSocket connection failed: %s", e)
            if self._stop.is_set():
                break
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.reconnect_delay)
            except asyncio.TimeoutError:
                logger.info("WebSocket reconnecting...")

    async def _listen(self) -> None:
        ws = await self._connect(self.url)
        self._ws = ws
        self.connected = True
        logger.info("WebSocket connected for auction: %s", self.auction_id)
        try:
            async for message in ws:
                if message.type == aiohttp.WSMsgType.TEXT:
                    await self._handle(message.data)
                elif message.type == aiohttp.WSMsgType.ERROR:
                    logger.error("WebSocket error: %s", ws.exception())
                    break
        finally:
            self.connected = False
            self._ws = None
            logger.info("WebSocket disconnected")

    async def _handle(self, raw: str) -> None:
        try:
            message = BidMessage.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.error("Failed to parse WebSocket message: %s", e)
            return
        logger.debug("WebSocket message: %s", message)
        self.last_message = message
        if self.on_message is not None:
            await self.on_message(message)

    async def send(self, data: Dict[str, Any]) -> bool:
        """Send a JSON frame if the socket is open; otherwise drop it"""
        ws = self._ws
        if ws is None or ws.closed:
            return False
        await ws.send_str(json.dumps(data))
        return True

    async def close(self) -> None:
        self._stop.set()
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._http is not None:
            await self._http.close()
            self._http = None
