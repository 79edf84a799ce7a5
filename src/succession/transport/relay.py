"""Websocket relay transport.

Speaks the relay wire protocol over aiohttp websockets:

- query: send ``["REQ", <sub>, <filter>]``, collect ``["EVENT", <sub>, <event>]``
  until ``["EOSE", <sub>]``, then send ``["CLOSE", <sub>]``
- publish: send ``["EVENT", <event>]`` and wait for
  ``["OK", <event id>, <accepted>, <message>]``

Several relays can be configured. Queries return the union of all answers
(deduplicated by event id) and fail only if every relay failed; publishing
succeeds if at least one relay accepted the event.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import Callable, Sequence
from typing import Any

import aiohttp
from aiohttp import WSMsgType

from ..core.exceptions import TransportError
from .base import EventFilter, RawEvent

logger = logging.getLogger(__name__)

DEFAULT_RELAY_TIMEOUT = 10.0  # seconds


def parse_relay_message(data: str) -> list[Any] | None:
    """Decode a relay frame; ``None`` for anything that is not a tagged JSON array."""
    try:
        message = json.loads(data)
    except (json.JSONDecodeError, RecursionError):
        return None
    if not isinstance(message, list) or not message or not isinstance(message[0], str):
        return None
    return message


async def collect_events(ws: Any, subscription_id: str) -> list[RawEvent]:
    """Read frames from ``ws`` until the relay signals end of stored events.

    Returns the events received for ``subscription_id``. If the connection
    closes before ``EOSE``, whatever arrived so far is returned.

    Raises:
        TransportError: If the relay closed the subscription.
    """
    events: list[RawEvent] = []
    async for msg in ws:
        if msg.type == WSMsgType.TEXT:
            message = parse_relay_message(msg.data)
            if message is None or len(message) < 2:
                continue

            frame, sub = message[0], message[1]
            if frame == "EVENT" and sub == subscription_id and len(message) >= 3:
                if isinstance(message[2], dict):
                    events.append(message[2])
            elif frame == "EOSE" and sub == subscription_id:
                return events
            elif frame == "CLOSED" and sub == subscription_id:
                reason = message[2] if len(message) >= 3 else ""
                raise TransportError(f"Relay closed subscription: {reason}")
            elif frame == "NOTICE":
                logger.info(f"Relay notice: {sub}")

        elif msg.type in (WSMsgType.ERROR, WSMsgType.CLOSE, WSMsgType.CLOSED):
            break

    logger.warning(f"Relay connection ended before EOSE; returning {len(events)} events")
    return events


async def wait_for_ok(ws: Any, event_id: str) -> None:
    """Wait for the relay's ``OK`` frame for ``event_id``.

    Raises:
        TransportError: If the relay rejected the event or hung up first.
    """
    async for msg in ws:
        if msg.type == WSMsgType.TEXT:
            message = parse_relay_message(msg.data)
            if message is None or message[0] != "OK" or len(message) < 3:
                continue
            if message[1] != event_id:
                continue
            if message[2] is True:
                return
            reason = message[3] if len(message) >= 4 else ""
            raise TransportError(f"Relay rejected event: {reason}")

        elif msg.type in (WSMsgType.ERROR, WSMsgType.CLOSE, WSMsgType.CLOSED):
            break

    raise TransportError("Relay closed the connection before acknowledging the event")


class RelayTransport:
    """:class:`~succession.transport.base.EventTransport` over one or more relays.

    Args:
        urls: Relay websocket URLs (``wss://…``).
        timeout: Per-relay deadline in seconds for a query or publish.
        session_factory: Builds the ``aiohttp.ClientSession`` for each call.
    """

    def __init__(
        self,
        urls: Sequence[str],
        timeout: float = DEFAULT_RELAY_TIMEOUT,
        session_factory: Callable[..., aiohttp.ClientSession] = aiohttp.ClientSession,
    ) -> None:
        if not urls:
            raise ValueError("At least one relay URL is required")
        self.urls = list(urls)
        self.timeout = timeout
        self._session_factory = session_factory

    # -------------------------------------------------------------------------
    # QUERY
    # -------------------------------------------------------------------------

    async def query_events(self, filters: EventFilter) -> list[RawEvent]:
        results = await asyncio.gather(
            *(self._query_relay(url, filters) for url in self.urls),
            return_exceptions=True,
        )

        events: dict[str, RawEvent] = {}
        failures: list[str] = []
        for url, result in zip(self.urls, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(f"Query to {url} failed: {result}")
                failures.append(url)
                continue
            if isinstance(result, BaseException):
                raise result
            for event in result:
                event_id = event.get("id")
                if isinstance(event_id, str):
                    events.setdefault(event_id, event)

        if len(failures) == len(self.urls):
            raise TransportError(f"All {len(self.urls)} relays failed", url=failures[0])

        return list(events.values())

    async def _query_relay(self, url: str, filters: EventFilter) -> list[RawEvent]:
        subscription_id = secrets.token_hex(8)
        try:
            async with self._session_factory(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.ws_connect(url) as ws:
                    await ws.send_json(["REQ", subscription_id, filters])
                    events = await asyncio.wait_for(collect_events(ws, subscription_id), timeout=self.timeout)
                    if not ws.closed:
                        await ws.send_json(["CLOSE", subscription_id])
        except (aiohttp.ClientError, OSError, TimeoutError) as e:
            raise TransportError(f"Query to relay failed: {e or e.__class__.__name__}", url=url) from e

        logger.debug(f"Relay {url} returned {len(events)} events")
        return events

    # -------------------------------------------------------------------------
    # PUBLISH
    # -------------------------------------------------------------------------

    async def publish_event(self, event: RawEvent) -> None:
        results = await asyncio.gather(
            *(self._publish_to_relay(url, event) for url in self.urls),
            return_exceptions=True,
        )

        accepted = 0
        last_error: Exception | None = None
        for url, result in zip(self.urls, results, strict=True):
            if isinstance(result, Exception):
                logger.warning(f"Publish to {url} failed: {result}")
                last_error = result
            elif isinstance(result, BaseException):
                raise result
            else:
                accepted += 1

        if accepted == 0:
            raise TransportError(f"No relay accepted event: {last_error}")
        logger.info(f"Event {str(event.get('id'))[:12]}… accepted by {accepted}/{len(self.urls)} relays")

    async def _publish_to_relay(self, url: str, event: RawEvent) -> None:
        try:
            async with self._session_factory(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.ws_connect(url) as ws:
                    await ws.send_json(["EVENT", event])
                    await asyncio.wait_for(wait_for_ok(ws, str(event.get("id"))), timeout=self.timeout)
        except (aiohttp.ClientError, OSError, TimeoutError) as e:
            raise TransportError(f"Publish to relay failed: {e or e.__class__.__name__}", url=url) from e
