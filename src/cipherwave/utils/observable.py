"""Observable state holder with keyed subscriptions.

Derived components subscribe to the part of an upstream value they depend
on (the key) and are only notified when that part actually changes.

Example:
    state = Observable(session)
    state.subscribe(on_chain, key=lambda s: s.chain_id)
    state.set(replace(session, accounts=("0xabc...",)))  # on_chain not called
"""

import logging
from collections import deque
from typing import Any, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[T, T], None]
KeyFunc = Callable[[T], Any]


class Subscription(Generic[T]):
    """Handle returned by Observable.subscribe()."""

    def __init__(
        self,
        observable: "Observable[T]",
        listener: Listener,
        key: Optional[KeyFunc] = None,
    ):
        self._observable = observable
        self._listener = listener
        self._key = key
        self.active = True

    def _deliver(self, old: T, new: T) -> None:
        if not self.active:
            return
        if self._key is not None and self._key(old) == self._key(new):
            return
        self._listener(old, new)

    def unsubscribe(self) -> None:
        """Stop receiving notifications."""
        if self.active:
            self.active = False
            self._observable._remove(self)


class Observable(Generic[T]):
    """Holds a value and notifies subscribers when it changes.

    Values are compared with ==, so immutable dataclasses work well.
    Updates made by a listener while a notification is being dispatched
    are queued and delivered after the current one, so every listener
    observes changes in the order they were applied. A listener that raises
    does not stop delivery to the others; the first error is re-raised once
    dispatch completes.
    """

    def __init__(self, value: T, name: str = "observable"):
        self._value = value
        self.name = name
        self._subscriptions: list[Subscription[T]] = []
        self._pending: deque[tuple[T, T]] = deque()
        self._dispatching = False

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> bool:
        """Replace the value.

        Returns:
            True if the value changed and subscribers were notified
        """
        if value == self._value:
            return False

        old = self._value
        self._value = value
        self._pending.append((old, value))

        if self._dispatching:
            return True

        self._dispatching = True
        errors: list[Exception] = []
        try:
            while self._pending:
                before, after = self._pending.popleft()
                for subscription in list(self._subscriptions):
                    try:
                        subscription._deliver(before, after)
                    except Exception as e:
                        logger.error(f"{self.name}: subscriber failed: {e}")
                        errors.append(e)
        finally:
            self._dispatching = False
            self._pending.clear()

        # Every subscriber has seen every queued change; surface the first failure
        if errors:
            raise errors[0]
        return True

    def subscribe(self, listener: Listener, key: Optional[KeyFunc] = None) -> Subscription[T]:
        """Subscribe to changes.

        Args:
            listener: Called with (old, new) after each relevant change
            key: Optional projection; listener only fires when it changes

        Returns:
            Subscription handle
        """
        subscription = Subscription(self, listener, key)
        self._subscriptions.append(subscription)
        logger.debug(f"{self.name}: subscriber added ({len(self._subscriptions)} total)")
        return subscription

    def _remove(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
