"""
Domain event bus client (RabbitMQ topic exchange via aio-pika).

One instance per process, created by the composition root and injected
wherever events are published or consumed.

Delivery contract:
- publish() never raises on connectivity loss. While the channel is down the
  message is buffered in memory and flushed in enqueue order after reconnect.
  Buffered messages are lost if the process crashes.
- Publishing is persistent + mandatory + confirmed. A broker NACK keeps the
  message buffered for the next connection. The first unroutable
  (returned) message per process triggers one self-heal pass: assert the bind
  queue and its bindings, then republish the original bytes once.
- Consumers ack on handler success and nack without requeue on failure, so a
  poison message is logged once and never loops.
- Connection loss triggers unlimited reconnect attempts at a fixed interval.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Sequence

import aio_pika
from aio_pika import DeliveryMode, ExchangeType, Message
from aio_pika.exceptions import DeliveryError
from pamqp.commands import Basic
from yarl import URL

from core.domain.models import DomainMessage
from core.interfaces.messaging import IEventBus, MessageHandler

logger = logging.getLogger(__name__)


class BusState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class BusConfig:
    url: str = "amqp://localhost"
    exchange: str = "events"
    service_name: str = "event-service"
    retry_interval: float = 2.0  # seconds
    auto_bind: bool = False
    bind_queue: str = "events.debug"
    bind_keys: List[str] = field(default_factory=lambda: ["event.#"])
    auto_bind_on_return: bool = True
    log_payloads: bool = False
    max_log_bytes: int = 2048

    @classmethod
    def from_settings(cls, settings, features) -> "BusConfig":
        return cls(
            url=settings.rabbit_url,
            exchange=settings.rabbit_exchange,
            service_name=settings.resolved_service_name,
            retry_interval=settings.rabbit_retry_ms / 1000,
            auto_bind=features.RABBIT_AUTOBIND,
            bind_queue=settings.rabbit_bind_queue,
            bind_keys=settings.bind_keys or ["event.#"],
            auto_bind_on_return=features.RABBIT_AUTOBIND_ON_RETURN,
            log_payloads=features.RABBIT_LOG_PAYLOADS,
            max_log_bytes=settings.rabbit_max_log_bytes,
        )


@dataclass
class _Consumer:
    queue: str
    binding_keys: List[str]
    handler: MessageHandler
    prefetch: int
    channel: Any = None


def is_nack(error: DeliveryError) -> bool:
    """A publisher-confirm NACK, as opposed to a returned (unroutable) message"""
    return isinstance(getattr(error, "frame", None), Basic.Nack)


def masked_endpoint(url: str, exchange: str) -> Dict[str, str]:
    """Credential-free summary of the broker endpoint for logs"""
    try:
        parsed = URL(url)
        return {"host": parsed.host or "", "vhost": parsed.path or "/", "exchange": exchange}
    except (TypeError, ValueError):
        return {"host": "<unparseable>", "vhost": "", "exchange": exchange}


class EventBusClient(IEventBus):
    """Process-wide publisher/consumer with lazy reconnect"""

    def __init__(self, config: BusConfig,
                 connect_factory: Callable[[str], Awaitable[Any]] = aio_pika.connect):
        self._config = config
        self._connect_factory = connect_factory
        self._state = BusState.DISCONNECTED
        self._connection = None
        self._channel = None
        self._exchange = None
        self._consumers: List[_Consumer] = []
        self._pending: Deque[DomainMessage] = deque()
        self._publish_lock = asyncio.Lock()
        self._reconnect_task: Optional[asyncio.Task] = None
        self._self_heal_done = False
        self._closing = False

    # --- State ---

    @property
    def state(self) -> BusState:
        return self._state

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def endpoint(self) -> Dict[str, str]:
        return masked_endpoint(self._config.url, self._config.exchange)

    # --- Connection lifecycle ---

    async def connect(self) -> None:
        """Connect now; on failure keep retrying in the background."""
        self._closing = False
        if not await self._connect_once():
            self._schedule_reconnect()

    async def _connect_once(self) -> bool:
        if self._closing:
            return False
        if self._state != BusState.DISCONNECTED:
            return self._state == BusState.CONNECTED

        self._state = BusState.CONNECTING
        if self._connection is not None:
            await self._discard_connection()
        try:
            connection = await self._connect_factory(self._config.url)
            self._connection = connection
            self._channel = await connection.channel(publisher_confirms=True, on_return_raises=True)
            self._exchange = await self._channel.declare_exchange(
                self._config.exchange, ExchangeType.TOPIC, durable=True,
            )
            connection.close_callbacks.add(self._on_connection_closed)

            if self._config.auto_bind:
                await self._bind_queue(self._config.bind_queue, self._config.bind_keys)
                logger.info(f"[EVENT_BUS] Bind queue configured: {self._config.bind_queue} "
                            f"<- {self._config.bind_keys}")

            for consumer in self._consumers:
                await self._start_consumer(consumer)
        except Exception as e:
            logger.error(f"[EVENT_BUS] Connection failed ({self.endpoint}): {e}")
            await self._close_consumer_channels()
            await self._discard_connection()
            self._state = BusState.DISCONNECTED
            return False

        self._state = BusState.CONNECTED
        logger.info(f"[EVENT_BUS] Connected and exchange declared: {self.endpoint}")
        await self._flush_pending()
        return True

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        attempt = 0
        while not self._closing and self._state != BusState.CONNECTED:
            await asyncio.sleep(self._config.retry_interval)
            attempt += 1
            logger.info(f"[EVENT_BUS] Reconnect attempt {attempt}")
            await self._connect_once()

    def _on_connection_closed(self, sender=None, *args) -> None:
        if self._closing:
            return
        if sender is not None and sender is not self._connection:
            # Late callback from a connection we already replaced
            logger.debug("[EVENT_BUS] Ignoring close of a discarded connection")
            return
        logger.warning("[EVENT_BUS] Connection closed. Reconnecting...")
        self._mark_disconnected()

    def _mark_disconnected(self) -> None:
        self._state = BusState.DISCONNECTED
        self._channel = None
        self._exchange = None
        for consumer in self._consumers:
            consumer.channel = None
        self._schedule_reconnect()

    async def _discard_connection(self) -> None:
        connection, self._connection = self._connection, None
        self._channel = None
        self._exchange = None
        if connection is not None:
            try:
                await connection.close()
            except Exception as e:
                logger.debug(f"[EVENT_BUS] Ignoring close error on failed connection: {e}")

    async def _close_consumer_channels(self) -> None:
        for consumer in self._consumers:
            if consumer.channel is not None:
                try:
                    await consumer.channel.close()
                except Exception as e:
                    logger.warning(f"[EVENT_BUS] Error closing consumer channel {consumer.queue}: {e}")
                consumer.channel = None

    async def _reset_connection(self) -> None:
        """
        Drop a connection that failed a publish while still looking open,
        so the reconnect replaces it instead of running beside it.
        """
        await self._close_consumer_channels()
        await self._discard_connection()
        self._mark_disconnected()

    async def close(self) -> None:
        self._closing = True
        if self._reconnect_task and not self._reconnect_task.done():
            self._reconnect_task.cancel()
        await self._close_consumer_channels()
        try:
            if self._channel is not None:
                await self._channel.close()
            if self._connection is not None:
                await self._connection.close()
            logger.info("[EVENT_BUS] Connection closed")
        except Exception as e:
            logger.error(f"[EVENT_BUS] Error closing connection: {e}")
        self._connection = None
        self._channel = None
        self._exchange = None
        self._state = BusState.DISCONNECTED
        if self._pending:
            logger.warning(f"[EVENT_BUS] {len(self._pending)} buffered message(s) not delivered at shutdown")

    # --- Publishing ---

    async def publish(self, event_type: str, data: Dict[str, Any]) -> None:
        message = DomainMessage(event_type=event_type, data=data, service=self._config.service_name)
        async with self._publish_lock:
            if self._state != BusState.CONNECTED or self._pending:
                self._pending.append(message)
                logger.warning(f"[EVENT_BUS] Channel not available, queued {event_type} "
                               f"({len(self._pending)} pending)")
                if self._state == BusState.DISCONNECTED:
                    self._schedule_reconnect()
                return

            if not await self._send_message(message):
                self._pending.append(message)
                await self._reset_connection()

    async def _flush_pending(self) -> None:
        async with self._publish_lock:
            if self._pending:
                logger.info(f"[EVENT_BUS] Flushing {len(self._pending)} buffered message(s)")
            while self._pending and self._state == BusState.CONNECTED:
                if not await self._send_message(self._pending[0]):
                    await self._reset_connection()
                    return
                self._pending.popleft()

    async def _send_message(self, message: DomainMessage) -> bool:
        """
        Publish one message. Returns False on a connectivity failure or a
        broker NACK; returned (unroutable) messages are handled here and
        count as sent.
        """
        body = message.to_bytes()
        routing_key = message.routing_key
        self._log_payload(routing_key, body)
        try:
            await self._send(routing_key, body)
        except DeliveryError as e:
            if is_nack(e):
                logger.warning(f"[EVENT_BUS] Broker nacked {message.event_type}, keeping it for retry")
                return False
            return await self._handle_returned(routing_key, body)
        except Exception as e:
            logger.error(f"[EVENT_BUS] Failed to publish {message.event_type}: {e}")
            return False
        logger.info(f"[EVENT_BUS] Published {message.event_type} (routing_key={routing_key})")
        return True

    async def _send(self, routing_key: str, body: bytes) -> None:
        if self._exchange is None:
            raise ConnectionError("exchange not declared")
        confirmation = await self._exchange.publish(
            Message(
                body,
                content_type="application/json",
                delivery_mode=DeliveryMode.PERSISTENT,
            ),
            routing_key=routing_key,
            mandatory=True,
        )
        if isinstance(confirmation, Basic.Nack):
            raise DeliveryError(None, confirmation)

    async def _handle_returned(self, routing_key: str, body: bytes) -> bool:
        logger.warning(f"[EVENT_BUS] Message returned (unroutable): exchange={self._config.exchange} "
                       f"routing_key={routing_key}")
        if not self._config.auto_bind_on_return or self._self_heal_done:
            logger.error(f"[EVENT_BUS] Dropped unroutable message for {routing_key}")
            return True

        self._self_heal_done = True
        logger.warning(f"[EVENT_BUS] Self-heal: binding {self._config.bind_queue} "
                       f"<- {self._config.bind_keys} and retrying once")
        try:
            await self._bind_queue(self._config.bind_queue, self._config.bind_keys)
            await self._send(routing_key, body)
        except DeliveryError as e:
            if is_nack(e):
                logger.warning(f"[EVENT_BUS] Broker nacked self-heal retry of {routing_key}, keeping it")
                return False
            logger.error(f"[EVENT_BUS] Still unroutable after self-heal, dropped: {routing_key}")
            return True
        except Exception as e:
            logger.error(f"[EVENT_BUS] Self-heal retry failed for {routing_key}: {e}")
            return True
        logger.info(f"[EVENT_BUS] Retried publish after auto-bind: {routing_key}")
        return True

    def _log_payload(self, routing_key: str, body: bytes) -> None:
        if not self._config.log_payloads:
            return
        size = len(body)
        text = body[: self._config.max_log_bytes].decode("utf-8", errors="replace")
        if size > self._config.max_log_bytes:
            text += f"... [{size} bytes]"
        logger.info(f"[EVENT_BUS] Publishing message exchange={self._config.exchange} "
                    f"routing_key={routing_key} size={size} payload={text}")

    async def _bind_queue(self, queue_name: str, keys: Sequence[str]) -> None:
        queue = await self._channel.declare_queue(queue_name, durable=True)
        for key in keys:
            await queue.bind(self._exchange, routing_key=key)

    # --- Consuming ---

    async def consume(self, queue: str, binding_keys: Sequence[str],
                      handler: MessageHandler, prefetch: int = 1) -> None:
        consumer = _Consumer(queue, list(binding_keys), handler, max(1, prefetch))
        self._consumers.append(consumer)
        if self._state == BusState.CONNECTED:
            await self._start_consumer(consumer)
        else:
            logger.info(f"[EVENT_BUS] Consumer for {queue} will start once connected")

    async def _start_consumer(self, consumer: _Consumer) -> None:
        channel = await self._connection.channel()
        await channel.set_qos(prefetch_count=consumer.prefetch)
        exchange = await channel.declare_exchange(self._config.exchange, ExchangeType.TOPIC, durable=True)
        queue = await channel.declare_queue(consumer.queue, durable=True)
        for key in consumer.binding_keys:
            await queue.bind(exchange, routing_key=key)
        await queue.consume(partial(self._dispatch, consumer))
        consumer.channel = channel
        logger.info(f"[EVENT_BUS] Consuming {consumer.queue} <- {consumer.binding_keys} "
                    f"(prefetch={consumer.prefetch})")

    async def _dispatch(self, consumer: _Consumer, incoming) -> None:
        routing_key = incoming.routing_key or ""
        try:
            message = DomainMessage.from_bytes(incoming.body)
            await consumer.handler(message, routing_key)
        except Exception as e:
            logger.error(f"[EVENT_BUS] {consumer.queue} failed to process {routing_key}: {e}", exc_info=True)
            await self._settle(incoming, ack=False)
            return
        await self._settle(incoming, ack=True)

    async def _settle(self, incoming, ack: bool) -> None:
        try:
            if ack:
                await incoming.ack()
            else:
                await incoming.nack(requeue=False)
        except Exception as e:
            # Channel gone: the broker redelivers the unacked message
            logger.warning(f"[EVENT_BUS] Could not {'ack' if ack else 'nack'} delivery: {e}")
