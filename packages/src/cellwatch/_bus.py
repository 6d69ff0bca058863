"""Control bus port and adapters.

Provides :class:`BusPort` (Protocol) and three implementations:

- MqttBus: real aiomqtt-based adapter with reconnection
- MockBus: in-memory broker double with retained messages
- NullBus: silent no-op adapter

The registry only ever sees the port: sticky subscriptions with ``+``
wildcards and a synchronous ``send``.  Sticky means a new subscription
is immediately replayed the retained value of every matching topic and
then receives every later publish.

Design decisions:

- Handlers are synchronous; all registry mutation happens inside one
  handler call at a time, so no locking is required
- aiomqtt imported lazily inside MqttBus._connection_loop() so the mock
  and null adapters work without aiomqtt installed
- MqttBus relies on the broker's retained messages for replay; every
  tracked subscription is restored on reconnect, after the
  ``on_connect`` callbacks have run
- Outbound sends are queued and drained by the connection loop, so
  ``send`` never blocks the caller
- Commands are not buffered across outages: sends while disconnected
  are dropped, and anything still queued is discarded on connect, so
  hardware never receives writes made against a stale model
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from cellwatch._settings import MqttSettings
from cellwatch._topics import topic_matches

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Value objects and type aliases
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Message:
    """An inbound bus message."""

    topic: str
    payload: str


MessageHandler = Callable[[Message], None]
"""Synchronous callback invoked for each delivered message."""

ConnectCallback = Callable[[], None]
"""Callback invoked on every (re)connection, before replay starts."""


@dataclass(frozen=True, slots=True)
class _Publish:
    topic: str
    payload: str
    retain: bool


@dataclass(frozen=True, slots=True)
class _Subscribe:
    pattern: str


# ---------------------------------------------------------------------------
# Port (Protocol)
# ---------------------------------------------------------------------------


@runtime_checkable
class BusPort(Protocol):
    """Port contract for the control bus."""

    def add_sticky_subscription(
        self,
        pattern: str,
        handler: MessageHandler,
    ) -> None: ...

    def send(self, topic: str, payload: str, retain: bool = False) -> None: ...


@runtime_checkable
class ReconnectingBus(BusPort, Protocol):
    """A bus that announces each (re)connection before replaying state."""

    def on_connect(self, callback: ConnectCallback) -> None: ...


# ---------------------------------------------------------------------------
# Null adapter
# ---------------------------------------------------------------------------


@dataclass
class NullBus:
    """Silent no-op bus adapter.

    Every method is a no-op that logs at DEBUG level.  Useful for
    registries that are fed by direct ``dispatch()`` calls only.
    """

    def add_sticky_subscription(
        self,
        pattern: str,
        handler: MessageHandler,  # noqa: ARG002
    ) -> None:
        """Silently discard a subscription."""
        logger.debug("NullBus.add_sticky_subscription(%s) discarded", pattern)

    def send(
        self,
        topic: str,
        payload: str,  # noqa: ARG002
        retain: bool = False,  # noqa: ARG002
    ) -> None:
        """Silently discard an outbound message."""
        logger.debug("NullBus.send(%s) discarded", topic)


# ---------------------------------------------------------------------------
# Mock / test-double adapter
# ---------------------------------------------------------------------------


@dataclass
class MockBus:
    """In-memory broker double with sticky subscription semantics.

    Keeps the retained payload of every topic published with
    ``retain=True``, replays matching retained topics to each new
    subscription, and records everything sent through :meth:`send`.
    """

    retained: dict[str, str] = field(default_factory=dict)
    sent: list[tuple[str, str, bool]] = field(default_factory=list)
    _subscriptions: list[tuple[str, MessageHandler]] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _connect_callbacks: list[ConnectCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )

    # -- BusPort methods ---------------------------------------------------

    def on_connect(self, callback: ConnectCallback) -> None:
        """Register a callback run by :meth:`reconnect`."""
        self._connect_callbacks.append(callback)

    def add_sticky_subscription(
        self,
        pattern: str,
        handler: MessageHandler,
    ) -> None:
        """Register *handler* and replay retained topics matching *pattern*."""
        self._subscriptions.append((pattern, handler))
        for topic, payload in list(self.retained.items()):
            if topic_matches(pattern, topic):
                handler(Message(topic, payload))

    def send(self, topic: str, payload: str, retain: bool = False) -> None:
        """Record an outbound message."""
        self.sent.append((topic, payload, retain))
        if retain:
            self._retain(topic, payload)

    # -- Test helpers -------------------------------------------------------

    def publish(self, topic: str, payload: str, *, retain: bool = True) -> None:
        """Simulate a remote publish and deliver it to matching handlers.

        As on a real broker, a retained empty payload deletes the
        retained message but is still delivered to current subscribers.
        """
        if retain:
            self._retain(topic, payload)
        message = Message(topic, payload)
        for pattern, handler in list(self._subscriptions):
            if topic_matches(pattern, topic):
                handler(message)

    def replay(self) -> None:
        """Redeliver the whole retained state, as after a reconnect."""
        for pattern, handler in list(self._subscriptions):
            for topic, payload in list(self.retained.items()):
                if topic_matches(pattern, topic):
                    handler(Message(topic, payload))

    def reconnect(self) -> None:
        """Simulate a reconnection: run connect callbacks, then replay."""
        for callback in list(self._connect_callbacks):
            callback()
        self.replay()

    @property
    def patterns(self) -> list[str]:
        """Subscribed patterns in registration order."""
        return [pattern for pattern, _ in self._subscriptions]

    def get_messages_for(self, topic: str) -> list[tuple[str, bool]]:
        """Return ``(payload, retain)`` tuples sent to *topic*."""
        return [
            (payload, retain) for t, payload, retain in self.sent if t == topic
        ]

    def reset(self) -> None:
        """Clear retained state, recorded sends, subscriptions and callbacks."""
        self.retained.clear()
        self.sent.clear()
        self._subscriptions.clear()
        self._connect_callbacks.clear()

    def _retain(self, topic: str, payload: str) -> None:
        if payload:
            self.retained[topic] = payload
        else:
            self.retained.pop(topic, None)


# ---------------------------------------------------------------------------
# Real adapter
# ---------------------------------------------------------------------------


@dataclass
class MqttBus:
    """Production bus adapter backed by *aiomqtt*.

    Uses a background task that maintains a persistent connection
    with automatic reconnection.  Sticky replay comes from the broker:
    every tracked subscription is (re)issued after connecting, and the
    broker answers with the retained message of each matching topic.
    """

    settings: MqttSettings

    # internal state --------------------------------------------------------
    _subscriptions: list[tuple[str, MessageHandler]] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _connect_callbacks: list[ConnectCallback] = field(
        default_factory=list,
        init=False,
        repr=False,
    )
    _outbox: asyncio.Queue[_Publish | _Subscribe] = field(
        default_factory=asyncio.Queue,
        init=False,
        repr=False,
    )
    _client: Any = field(default=None, init=False, repr=False)
    _listen_task: asyncio.Task[None] | None = field(
        default=None,
        init=False,
        repr=False,
    )
    _connected: asyncio.Event = field(
        default_factory=asyncio.Event,
        init=False,
        repr=False,
    )
    _stopping: bool = field(default=False, init=False, repr=False)

    # -- BusPort methods ---------------------------------------------------

    def add_sticky_subscription(
        self,
        pattern: str,
        handler: MessageHandler,
    ) -> None:
        """Track *pattern* and subscribe to it once connected.

        Subscriptions are restored after every reconnection.
        """
        self._subscriptions.append((pattern, handler))
        if self.is_connected:
            self._outbox.put_nowait(_Subscribe(pattern))

    def send(self, topic: str, payload: str, retain: bool = False) -> None:
        """Queue *payload* for publication to *topic*.

        Dropped with a DEBUG log while disconnected.
        """
        if not self.is_connected:
            logger.debug(
                "Dropping send to %s while disconnected",
                topic,
                extra={"topic": topic},
            )
            return
        self._outbox.put_nowait(_Publish(topic, payload, retain))

    # -- Callback registration ---------------------------------------------

    def on_connect(self, callback: ConnectCallback) -> None:
        """Register a callback run on each connection, before replay."""
        self._connect_callbacks.append(callback)

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start the background connection loop."""
        if self._listen_task is not None and not self._listen_task.done():
            logger.debug("MqttBus.start() called while already running")
            return
        self._stopping = False
        self._listen_task = asyncio.create_task(
            self._connection_loop(),
        )

    async def stop(self) -> None:
        """Stop the connection loop and clean up.

        Idempotent, safe to call multiple times.
        """
        self._stopping = True
        if self._listen_task is not None:
            self._listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None
        self._client = None
        self._connected.clear()

    @property
    def is_connected(self) -> bool:
        """Whether the adapter is currently connected to the broker."""
        return self._connected.is_set()

    # -- Internal -----------------------------------------------------------

    async def _connection_loop(self) -> None:
        """Maintain a persistent connection with auto-reconnect.

        ``aiomqtt`` is imported lazily here so that ``MockBus`` and
        ``NullBus`` work without the dependency.
        """
        try:
            import aiomqtt  # noqa: PLC0415
        except ModuleNotFoundError as exc:
            msg = "aiomqtt is required to use MqttBus"
            raise RuntimeError(msg) from exc

        while not self._stopping:
            try:
                password: str | None = None
                if self.settings.password is not None:
                    password = self.settings.password.get_secret_value()

                async with aiomqtt.Client(
                    hostname=self.settings.host,
                    port=self.settings.port,
                    username=self.settings.username,
                    password=password,
                    identifier=self.settings.client_id or None,
                ) as client:
                    self._client = client
                    writer: asyncio.Task[None] | None = None
                    try:
                        self._discard_outbox()
                        for callback in list(self._connect_callbacks):
                            callback()

                        # Patterns added while restoring are picked up
                        # by the index bound, not by the outbox.
                        index = 0
                        while index < len(self._subscriptions):
                            pattern, _ = self._subscriptions[index]
                            await client.subscribe(
                                pattern,
                                qos=self.settings.qos,
                            )
                            index += 1

                        self._connected.set()
                        logger.info(
                            "MQTT connected to %s:%d",
                            self.settings.host,
                            self.settings.port,
                        )

                        writer = asyncio.create_task(self._drain_outbox(client))
                        async for message in client.messages:
                            self._dispatch(message)
                    finally:
                        if writer is not None:
                            writer.cancel()
                            with contextlib.suppress(asyncio.CancelledError):
                                await writer
                        self._connected.clear()
                        self._client = None

            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning(
                    "MQTT connection lost, reconnecting in %.1fs",
                    self.settings.reconnect_interval,
                    exc_info=True,
                )
                await asyncio.sleep(
                    self.settings.reconnect_interval,
                )

    def _discard_outbox(self) -> None:
        """Drop items left over from a previous connection.

        Subscriptions are restored from the tracked list instead.
        """
        while not self._outbox.empty():
            item = self._outbox.get_nowait()
            if isinstance(item, _Publish):
                logger.debug(
                    "Discarding stale send to %s",
                    item.topic,
                    extra={"topic": item.topic},
                )

    async def _drain_outbox(self, client: Any) -> None:
        """Publish queued messages and issue late subscriptions."""
        while True:
            item = await self._outbox.get()
            match item:
                case _Publish(topic=topic, payload=payload, retain=retain):
                    await client.publish(
                        topic,
                        payload,
                        retain=retain,
                        qos=self.settings.qos,
                    )
                    logger.debug("Published to %s (retain=%s)", topic, retain)
                case _Subscribe(pattern=pattern):
                    await client.subscribe(pattern, qos=self.settings.qos)

    def _dispatch(self, message: Any) -> None:
        """Decode and fan-out an inbound message to matching handlers."""
        topic = str(message.topic)

        if message.payload is None:
            logger.debug(
                "Skipping message with None payload on %s",
                topic,
            )
            return

        try:
            payload = (
                message.payload.decode("utf-8")
                if isinstance(message.payload, (bytes, bytearray))
                else str(message.payload)
            )
        except UnicodeDecodeError:
            # Never propagate into the connection loop.
            logger.warning(
                "Dropping message with non-UTF-8 payload on %s",
                topic,
                extra={"topic": topic},
            )
            return

        inbound = Message(topic, payload)
        for pattern, handler in list(self._subscriptions):
            if not topic_matches(pattern, topic):
                continue
            try:
                handler(inbound)
            except Exception:
                logger.exception(
                    "Error in message handler for %s",
                    topic,
                    extra={"topic": topic},
                )
