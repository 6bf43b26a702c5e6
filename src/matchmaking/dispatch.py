"""
Push fan-out for match-scoped state.

Observers subscribe to a topic scoped by an id (a match id, or a user id for
the match list) and receive the FULL current state on every change, never a
delta. Deliveries run as tasks on the event loop that owns the hub:

1. publish() marks the topic dirty and starts a delivery task if none runs
2. the task loads the latest state once and hands it to every live observer
3. publishes arriving meanwhile collapse into one more round

Cancelling a subscription takes effect before cancel() returns.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Set, Tuple

from loguru import logger

from src.core.diagnostics import track_delivery

MATCHES_TOPIC = "matches"
MESSAGES_TOPIC = "messages"
PROPOSALS_TOPIC = "proposals"

Observer = Callable[[list], Any]
Loader = Callable[[str], Awaitable[list]]
TopicKey = Tuple[str, str]


class Subscription:
    """Cancellation handle returned by SubscriptionHub.subscribe()."""

    def __init__(self, hub: "SubscriptionHub", topic: str, scope_id: str, observer: Observer):
        self.topic = topic
        self.scope_id = scope_id
        self.observer = observer
        self._hub = hub
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop all future deliveries. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._hub._detach(self)

    def __repr__(self) -> str:
        state = "active" if self._active else "cancelled"
        return f"<Subscription {self.topic}:{self.scope_id} {state}>"


class SubscriptionHub:
    """Registry of observers and the delivery loop feeding them."""

    def __init__(self):
        self._loaders: Dict[str, Loader] = {}
        self._subscribers: Dict[TopicKey, List[Subscription]] = {}
        self._tasks: Dict[TopicKey, asyncio.Task] = {}
        self._dirty: Set[TopicKey] = set()
        self._retiring: Set[TopicKey] = set()

    def register_topic(self, topic: str, loader: Loader) -> None:
        """Register the coroutine that loads the full state of a topic."""
        if topic in self._loaders:
            raise ValueError(f"Topic '{topic}' is already registered")
        self._loaders[topic] = loader

    def subscribe(self, topic: str, scope_id: str, observer: Observer) -> Subscription:
        """
        Register an observer. It receives the current state, then every change.

        Args:
            topic: Registered topic name
            scope_id: Match id or user id the topic is scoped to
            observer: Callable (sync or async) taking the full state list

        Returns:
            The subscription handle
        """
        if topic not in self._loaders:
            raise KeyError(f"Unknown topic '{topic}'")
        subscription = Subscription(self, topic, scope_id, observer)
        key = (topic, scope_id)
        self._subscribers.setdefault(key, []).append(subscription)
        logger.debug(f"Subscribed to {topic}:{scope_id} ({len(self._subscribers[key])} observers)")
        self._schedule(key)
        return subscription

    def publish(self, topic: str, scope_id: str) -> None:
        """Signal that the state of a topic changed."""
        key = (topic, scope_id)
        if not self._subscribers.get(key):
            return
        self._schedule(key)

    def retire(self, topic: str, scope_id: str) -> None:
        """Deliver the final state of a topic, then cancel all its subscriptions."""
        key = (topic, scope_id)
        if not self._subscribers.get(key):
            return
        self._retiring.add(key)
        self._schedule(key)

    def subscriber_count(self, topic: str | None = None) -> int:
        return sum(
            len(subs) for (name, _), subs in self._subscribers.items()
            if topic is None or name == topic
        )

    async def drain(self) -> None:
        """Wait until every pending delivery has run."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def close(self) -> None:
        """Cancel every subscription and pending delivery."""
        for subs in list(self._subscribers.values()):
            for subscription in list(subs):
                subscription.cancel()
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._dirty.clear()
        self._retiring.clear()

    def _detach(self, subscription: Subscription) -> None:
        key = (subscription.topic, subscription.scope_id)
        subs = self._subscribers.get(key)
        if not subs:
            return
        if subscription in subs:
            subs.remove(subscription)
        if not subs:
            del self._subscribers[key]
            self._dirty.discard(key)
        logger.debug(f"Unsubscribed from {subscription.topic}:{subscription.scope_id}")

    def _schedule(self, key: TopicKey) -> None:
        self._dirty.add(key)
        task = self._tasks.get(key)
        if task is None or task.done():
            self._tasks[key] = asyncio.get_running_loop().create_task(self._deliver(key))

    async def _deliver(self, key: TopicKey) -> None:
        topic, scope_id = key
        try:
            while key in self._dirty:
                self._dirty.discard(key)
                if not self._subscribers.get(key):
                    break
                try:
                    state = await self._loaders[topic](scope_id)
                except Exception as e:
                    # Subscriptions stay registered; the next publish retries the load
                    logger.error(f"Failed to load {topic}:{scope_id} for delivery: {e}")
                    break
                for subscription in list(self._subscribers.get(key, ())):
                    if not subscription.active:
                        continue
                    try:
                        result = subscription.observer(list(state))
                        if inspect.isawaitable(result):
                            await result
                        track_delivery()
                    except Exception:
                        logger.exception(f"Observer of {topic}:{scope_id} raised")
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
            if key in self._retiring:
                self._retiring.discard(key)
                for subscription in list(self._subscribers.get(key, ())):
                    subscription.cancel()
