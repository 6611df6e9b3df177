# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_chains

import asyncio
from typing import Iterable, List, Protocol

import redis.asyncio as redis
from loguru import logger

from coreason_chains.events.protocol import ChainEvent


class AsyncEventSink(Protocol):
    """
    Interface for event sinks.
    """

    async def emit(self, event: ChainEvent) -> None:
        """
        Emits an event to the sink.
        """
        ...


class RedisEventSink:
    """
    Event sink that publishes events to Redis Pub/Sub.
    """

    def __init__(self, redis_client: redis.Redis) -> None:
        self.redis = redis_client

    async def emit(self, event: ChainEvent) -> None:
        """
        Publishes the event to Redis.
        """
        # Execution events go to "execution:{id}", chain lifecycle events to "chain:{id}"
        if event.execution_id:
            channel = f"execution:{event.execution_id}"
        else:
            channel = f"chain:{event.chain_id}"
        await self.redis.publish(channel, event.model_dump_json())


class LoggingEventSink:
    """
    Event sink that logs events to stdout/logger.
    Useful for local debugging and fallback.
    """

    async def emit(self, event: ChainEvent) -> None:
        """
        Logs the event.
        """
        logger.info(f"Event: {event.event_type} - {event.chain_id} - {event.execution_id}")


class QueueEventSink:
    """
    Event sink backed by an asyncio.Queue that the caller drains.
    """

    def __init__(self, queue: asyncio.Queue[ChainEvent] | None = None) -> None:
        self.queue: asyncio.Queue[ChainEvent] = queue if queue is not None else asyncio.Queue()

    async def emit(self, event: ChainEvent) -> None:
        await self.queue.put(event)

    def drain(self) -> List[ChainEvent]:
        """Returns every queued event without waiting."""
        events: List[ChainEvent] = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class EventDispatcher:
    """
    Fans events out to every registered sink.

    Delivery is fire-and-forget: a failing sink is logged and skipped.
    """

    def __init__(self, sinks: Iterable[AsyncEventSink] = ()) -> None:
        self.sinks: List[AsyncEventSink] = list(sinks)

    def subscribe(self, sink: AsyncEventSink) -> None:
        self.sinks.append(sink)

    def unsubscribe(self, sink: AsyncEventSink) -> None:
        if sink in self.sinks:
            self.sinks.remove(sink)

    async def emit(self, event: ChainEvent) -> None:
        for sink in list(self.sinks):
            try:
                await sink.emit(event)
            except Exception as e:
                logger.warning(f"Event sink {type(sink).__name__} failed on {event.event_type}: {e}")
