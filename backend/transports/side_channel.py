"""
WebSocket side channel to the streaming.chat endpoint.
"""

import asyncio
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed

from core.side_channel import SideChannel, SideChannelMessage, SideChannelClosed
from utils import get_logger

logger = get_logger(__name__)


class WebSocketSideChannel(SideChannel):
    """
    Side channel backed by the websockets client.

    A reader task forwards every inbound frame as a SideChannelMessage and
    reports the close (ours or the server's) as a single SideChannelClosed.
    """

    def __init__(self, ping_interval: float = 20.0, ping_timeout: float = 10.0, close_timeout: float = 5.0):
        super().__init__()
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.close_timeout = close_timeout
        self.websocket = None
        self._reader: Optional[asyncio.Task] = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self.websocket is not None and not self._closing

    async def connect(self, url: str):
        if self.websocket is not None:
            await self.close()

        self._closing = False
        logger.info("Connecting side channel")
        self.websocket = await websockets.connect(
            url,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
            close_timeout=self.close_timeout,
        )
        self._reader = asyncio.create_task(self._read_loop(self.websocket))

    async def close(self):
        websocket, self.websocket = self.websocket, None
        if websocket is None:
            return

        self._closing = True
        try:
            await websocket.close()
        except Exception as e:
            logger.warning(f"Error closing side channel: {e}")

        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            # Let the reader observe the close and report it
            done, _ = await asyncio.wait({reader}, timeout=self.close_timeout)
            if not done:
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)

    async def _read_loop(self, websocket):
        close_code = None
        reason = None
        try:
            async for frame in websocket:
                data = frame.encode("utf-8") if isinstance(frame, str) else bytes(frame)
                self.notify(SideChannelMessage(data=data))
        except ConnectionClosed as e:
            received = e.rcvd
            if received is not None:
                close_code = str(received.code)
                reason = received.reason or None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            reason = str(e)
            logger.error(f"Side channel read error: {e}")

        if close_code is None and websocket.close_code is not None:
            close_code = str(websocket.close_code)
            reason = reason or websocket.close_reason or None

        logger.info(f"Side channel closed (code={close_code}, ours={self._closing})")
        self.notify(SideChannelClosed(
            close_code=close_code,
            was_cancelled=self._closing,
            reason=reason,
        ))
