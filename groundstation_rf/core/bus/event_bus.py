# groundstation_rf/core/bus/event_bus.py
from __future__ import annotations
import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class Topic(str, Enum):
    UPDATE = "update"
    SYNC = "sync"
    ALARM = "alarm"
    MODULE_CHANGED = "module_changed"


class EventBus:
    """
    Typed pub/sub channel owned by the front-end orchestrator.

    - topics are the Topic enum, nothing else is accepted
    - in-process callbacks run synchronously, in subscription order
    - async consumers get an asyncio.Queue (drops oldest if full)
    """

    def __init__(self):
        self._callbacks: Dict[Topic, List[Callable[[Any], Any]]] = {}
        self._subs: Dict[Topic, List[asyncio.Queue]] = {}
        self._lock = asyncio.Lock()

    # -------------------------------------------------
    # Callback subscribers
    # -------------------------------------------------
    def on(self, topic: Topic, cb: Callable[[Any], Any]) -> None:
        self._callbacks.setdefault(Topic(topic), []).append(cb)

    def off(self, topic: Topic, cb: Callable[[Any], Any]) -> None:
        topic = Topic(topic)
        if topic in self._callbacks:
            self._callbacks[topic] = [c for c in self._callbacks[topic] if c is not cb]

    # -------------------------------------------------
    # Queue subscribers
    # -------------------------------------------------
    async def subscribe(self, topic: Topic, maxsize: int = 8) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        async with self._lock:
            self._subs.setdefault(Topic(topic), []).append(q)
        return q

    async def unsubscribe(self, topic: Topic, q: asyncio.Queue) -> None:
        topic = Topic(topic)
        async with self._lock:
            if topic in self._subs:
                self._subs[topic] = [qq for qq in self._subs[topic] if qq is not q]

    # -------------------------------------------------
    # Publish
    # -------------------------------------------------
    def publish_nowait(self, topic: Topic, event: Any = None) -> None:
        topic = Topic(topic)
        for cb in list(self._callbacks.get(topic, [])):
            try:
                cb(event)
            except Exception:
                # a broken listener must not stop the tick
                logger.exception("[BUS] %s subscriber failed", topic.value)

        for q in list(self._subs.get(topic, [])):
            if q.full():
                try:
                    q.get_nowait()
                except asyncio.QueueEmpty:
                    pass
            q.put_nowait(event)

    def subscriber_count(self, topic: Topic) -> int:
        topic = Topic(topic)
        return len(self._callbacks.get(topic, [])) + len(self._subs.get(topic, []))
