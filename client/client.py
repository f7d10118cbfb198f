#!/usr/bin/env python3
"""
Minimal echo client

Connects once, sends one message, waits for one reply and disconnects.
No reconnect logic; see client.ws_client.EchoClient for the resilient client.
"""

from __future__ import annotations
import asyncio
from typing import Optional, Union

import websockets

from shared.config import DEFAULT_GREETING
from shared.log import get_logger

logger = get_logger(__name__)


async def send_once(
    url: str,
    message: str = DEFAULT_GREETING,
    *,
    timeout: float = 5.0,
    reply_timeout: float = 5.0,
) -> Optional[Union[str, bytes]]:
    """
    Send `message` to `url` and return the first reply, or None if none arrived
    within `reply_timeout`. Connection failures propagate to the caller.
    """
    async with websockets.connect(url, open_timeout=timeout) as ws:
        logger.info(f"Connected to {url}")
        await ws.send(message)
        logger.info(f"Sent: {message}")
        try:
            reply = await asyncio.wait_for(ws.recv(), timeout=reply_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No reply within {reply_timeout}s")
            return None
        logger.info(f"Received: {reply}")
        return reply
