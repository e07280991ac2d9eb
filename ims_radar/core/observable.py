"""Cycle state/progress holder with ordered change notification.

``CycleStatus`` owns the two observable fields of a radar cycle, ``state``
and ``progress``, plus an ``error`` channel used when a cycle fails.  Every
assignment that actually changes a value is published to all current
subscribers before the setter returns; nothing is batched or coalesced.

Delivery context:
    The status makes no assumption about threads.  A subscriber that needs
    updates on a particular thread (e.g. a UI loop) passes ``dispatch``, a
    function receiving a zero-argument thunk; the status calls
    ``dispatch(thunk)`` instead of invoking the callback itself.

Ordering:
    Publication happens under a re-entrant lock, so notifications reach each
    subscriber in exactly the order the values were produced, even when the
    writer moves between threads (the transform phase runs on a worker).
"""

from __future__ import annotations

import enum
import functools
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ims_radar.core.exceptions import ContractError
from ims_radar.models.candidate import CycleState

if TYPE_CHECKING:
    from collections.abc import Callable

    from ims_radar.core.exceptions import RadarError

logger = logging.getLogger("ims_radar.core.observable")


class ObservedField(enum.Enum):
    """Names of the observable channels."""

    STATE = "state"
    PROGRESS = "progress"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class StatusChange:
    """One published change.

    Attributes:
        field: Which channel changed.
        value: The new value (``CycleState``, ``int`` or an error dict).
        sequence: Monotonic counter across all channels, starting at 1.
    """

    field: ObservedField
    value: object
    sequence: int


def _call_now(thunk: Callable[[], None]) -> None:
    thunk()


class Subscription:
    """Handle returned by ``CycleStatus.subscribe``.

    Usable as a context manager; leaving the block detaches the callback.
    """

    def __init__(
        self,
        status: CycleStatus,
        callback: Callable[[StatusChange], None],
        dispatch: Callable[[Callable[[], None]], None],
    ) -> None:
        self._status = status
        self.callback = callback
        self.dispatch = dispatch
        self.active = True

    def unsubscribe(self) -> None:
        """Detach the callback.  Safe to call more than once."""
        if self.active:
            self._status._detach(self)
            self.active = False

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class CycleStatus:
    """Observable ``state``/``progress`` pair for one orchestrator."""

    def __init__(self) -> None:
        self._state = CycleState.WAITING
        self._progress = 0
        self._sequence = 0
        self._subscriptions: list[Subscription] = []
        self._lock = threading.RLock()

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def progress(self) -> int:
        return self._progress

    def subscribe(
        self,
        callback: Callable[[StatusChange], None],
        *,
        dispatch: Callable[[Callable[[], None]], None] | None = None,
    ) -> Subscription:
        """Attach *callback* to every future change.

        Args:
            callback: Receives each ``StatusChange``.
            dispatch: Optional delivery function; receives a thunk that
                invokes *callback*.  Defaults to calling it directly.

        Returns:
            A ``Subscription`` whose ``unsubscribe()`` detaches the callback.
        """
        subscription = Subscription(self, callback, dispatch or _call_now)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def set_state(self, value: CycleState, *, force: bool = False) -> bool:
        """Assign ``state``; publish and return ``True`` if it changed.

        With *force*, an unchanged value is published as well.
        """
        with self._lock:
            if value == self._state and not force:
                return False
            self._state = value
            self._publish(ObservedField.STATE, value)
            return True

    def set_progress(self, value: int) -> bool:
        """Assign ``progress``; publish and return ``True`` if it changed.

        Raises:
            ContractError: If *value* is outside ``[0, 100]``.
        """
        if not 0 <= value <= 100:
            msg = f"progress must be within [0, 100], got {value}"
            raise ContractError(msg, stage="status", code="PROGRESS_OUT_OF_RANGE")
        with self._lock:
            if value == self._progress:
                return False
            self._progress = value
            self._publish(ObservedField.PROGRESS, value)
            return True

    def report_error(self, error: RadarError) -> None:
        """Publish a failed cycle's structured error on the ``error`` channel."""
        with self._lock:
            self._publish(ObservedField.ERROR, error.to_error_dict())

    def _publish(self, field: ObservedField, value: object) -> None:
        self._sequence += 1
        change = StatusChange(field=field, value=value, sequence=self._sequence)
        for subscription in list(self._subscriptions):
            thunk = functools.partial(_deliver, subscription.callback, change)
            subscription.dispatch(thunk)


def _deliver(callback: Callable[[StatusChange], None], change: StatusChange) -> None:
    try:
        callback(change)
    except Exception:
        logger.exception(
            "Subscriber raised | field=%s | value=%s | sequence=%d",
            change.field.value,
            change.value,
            change.sequence,
        )
