"""
Ordered message channels.

``Channel`` links the two sides inside one process with synchronous,
strictly ordered delivery. ``QueueTransport`` is the asyncio flavour used
at the process edges, where a writer task or a test drains the queue.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable

from ..core.ports import Transport
from ..errors import ProtocolError

Message = dict[str, Any]
Receiver = Callable[[Message], None]


class TransportClosed(Exception):
    """Raised by ``receive`` once the peer has closed the transport."""


class Channel:
    """
    In-process duplex link between connected endpoints.

    A message sent by one endpoint reaches every other endpoint. Messages
    sent while a delivery is in progress (a receiver answering straight
    away) are queued behind it, so receivers always observe send order.

    >>> c = Channel()
    >>> got = []
    >>> send_a = c.connect(lambda m: got.append(("a", m)))
    >>> send_b = c.connect(lambda m: got.append(("b", m)))
    >>> send_a({"n": 1})
    >>> got
    [('b', {'n': 1})]
    """

    def __init__(self) -> None:
        self.receivers: list[Receiver] = []
        self._queue: deque[tuple[int, Message]] = deque()
        self._delivering = False

    def connect(self, receiver: Receiver) -> Callable[[Message], None]:
        sender_index = len(self.receivers)
        self.receivers.append(receiver)

        def send(message: Message) -> None:
            self._queue.append((sender_index, message))
            self._drain()

        return send

    def _drain(self) -> None:
        if self._delivering:
            return
        self._delivering = True
        try:
            while self._queue:
                sender_index, message = self._queue.popleft()
                for index, receiver in enumerate(self.receivers):
                    if index != sender_index:
                        receiver(message)
        finally:
            self._delivering = False


_CLOSED = object()


class QueueTransport(Transport):
    """One endpoint of an asyncio queue pair."""

    def __init__(self, inbox: asyncio.Queue[Any], outbox: asyncio.Queue[Any]):
        self.inbox = inbox
        self.outbox = outbox
        self.closed = False

    def send(self, message: Message) -> None:
        if self.closed:
            raise ProtocolError("send on closed transport")
        self.outbox.put_nowait(message)

    async def receive(self) -> Message:
        item = await self.inbox.get()
        if item is _CLOSED:
            raise TransportClosed()
        return item

    def drain(self) -> list[Message]:
        """Everything already delivered to this endpoint, without waiting."""
        items = []
        while not self.inbox.empty():
            item = self.inbox.get_nowait()
            if item is _CLOSED:
                # later receive() calls must still see the close
                self.inbox.put_nowait(item)
                break
            items.append(item)
        return items

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.outbox.put_nowait(_CLOSED)


def channel_pair() -> tuple[QueueTransport, QueueTransport]:
    """Two connected endpoints: what one sends, the other receives."""
    a_to_b: asyncio.Queue[Any] = asyncio.Queue()
    b_to_a: asyncio.Queue[Any] = asyncio.Queue()
    return QueueTransport(b_to_a, a_to_b), QueueTransport(a_to_b, b_to_a)


async def pump(
    transport: Transport,
    handler: Callable[[Message], Awaitable[None] | None],
) -> None:
    """Feed every received message to ``handler`` in order until closed."""
    while True:
        try:
            message = await transport.receive()
        except TransportClosed:
            return
        result = handler(message)
        if asyncio.iscoroutine(result):
            await result
