"""Advisory lock built on a single atomic counter.

The only primitive the backend must offer is "increment and return the new
value". Whoever moves a key from 0 (or absent) to 1 holds the lock; everyone
else polls until the holder resets the key or its expiry lapses::

    increment(key) == 1 ?  ->  write_raw(key, 1, expires_in=timeout + grace)
                              run critical section (bounded by timeout)
                              write_raw(key, 0)
    otherwise             ->  sleep(poll_interval), increment again

The expiry written right after acquisition is what keeps a crashed holder from
blocking the key forever; there is no heartbeat.
"""

from __future__ import annotations

import concurrent.futures
import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, TypeVar

from replaceable.config.locking import (
    DEFAULT_LOCK_GRACE,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    LOCK_KEY_NAMESPACE,
)

from .errors import LockingUnavailable, LockTimeout

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from .conditions import Predicate
    from .ports import LockBackend

log = logging.getLogger(__name__)

T = TypeVar("T")


def lock_key(predicate: Predicate, *, namespace: str = LOCK_KEY_NAMESPACE) -> str:
    digest = hashlib.sha256(predicate.serialize().encode("utf-8")).hexdigest()
    return f"{namespace}:{digest}"


def require_increment(backend: LockBackend | None) -> LockBackend:
    """Return ``backend`` if it can take part in locking, else raise ``LockingUnavailable``."""

    if backend is None:
        raise LockingUnavailable("Concurrency requested but no lock backend was configured")
    if not callable(getattr(backend, "increment", None)):
        raise LockingUnavailable(
            f"Lock backend {type(backend).__name__} does not support atomic increment"
        )
    return backend


@dataclass(slots=True)
class LockTicket:
    key: str
    acquired: bool = False
    expires_at: float | None = None


@dataclass(slots=True)
class LockDeadline:
    """Deadline of one critical section, visible to the thread running it.

    Stores call ``check_deadline`` right before writing. Once the lock has
    given up on the section (``cancel``) or the deadline has passed, the check
    raises ``LockTimeout`` so a detached section never writes after release.
    """

    key: str
    timeout: float
    deadline: float
    clock: Callable[[], float] = time.monotonic
    cancelled: bool = False

    def remaining(self) -> float:
        return self.deadline - self.clock()

    def is_expired(self) -> bool:
        return self.cancelled or self.remaining() <= 0

    def cancel(self) -> None:
        self.cancelled = True

    def check(self, operation: str = "writing") -> None:
        if self.is_expired():
            log.warning("Abandoning %s under lock %s: deadline passed", operation, self.key)
            raise LockTimeout(key=self.key, timeout=self.timeout, phase=operation)


# Per-thread stack of deadlines for the critical sections running on that thread.
_deadline_stack = threading.local()


def _get_deadline_stack() -> list[LockDeadline]:
    if not hasattr(_deadline_stack, "stack"):
        _deadline_stack.stack = []
    return _deadline_stack.stack


def current_deadline() -> LockDeadline | None:
    stack = _get_deadline_stack()
    return stack[-1] if stack else None


def check_deadline(operation: str = "writing") -> None:
    """Raise ``LockTimeout`` if the enclosing critical section has run out of time.

    Does nothing outside a locked critical section.
    """

    deadline = current_deadline()
    if deadline is not None:
        deadline.check(operation)


def _call_within(deadline: LockDeadline, fn: Callable[[], T]) -> T:
    stack = _get_deadline_stack()
    stack.append(deadline)
    try:
        return fn()
    finally:
        stack.pop()


class AdvisoryLock:
    """Cooperative lock on one backend key.

    Usable as a context manager; ``run`` executes the critical section under the
    lock's deadline. The deadline starts when acquisition begins, so time spent
    waiting for another holder counts against ``timeout``.
    """

    def __init__(
        self,
        backend: LockBackend,
        key: str,
        *,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        grace: float = DEFAULT_LOCK_GRACE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.ticket = LockTicket(key=key)
        self.timeout = timeout
        self.grace = grace
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock
        self._deadline: float | None = None

    @property
    def key(self) -> str:
        return self.ticket.key

    def remaining(self) -> float:
        if self._deadline is None:
            return self.timeout
        return self._deadline - self._clock()

    def acquire(self) -> LockTicket:
        self._deadline = self._clock() + self.timeout
        attempts = 0
        while True:
            attempts += 1
            if self.backend.increment(self.key) == 1:
                break
            if self.remaining() <= 0:
                raise LockTimeout(key=self.key, timeout=self.timeout, phase="acquiring")
            log.debug("Lock %s is held elsewhere; retry %d", self.key, attempts)
            self._sleep(min(self.poll_interval, max(self.remaining(), 0.0)))

        ttl = self.timeout + self.grace
        self.ticket.acquired = True
        self.ticket.expires_at = time.time() + ttl
        self.backend.write_raw(self.key, 1, expires_in=ttl)
        log.debug("Acquired lock %s after %d attempt(s)", self.key, attempts)
        return self.ticket

    def release(self) -> None:
        if not self.ticket.acquired:
            return
        self.ticket.acquired = False
        self.ticket.expires_at = None
        self.backend.write_raw(self.key, 0, expires_in=None)
        log.debug("Released lock %s", self.key)

    def run(self, fn: Callable[[], T]) -> T:
        """Execute ``fn`` and return its result, or raise ``LockTimeout`` at the deadline.

        A thread cannot be killed, so on timeout ``fn`` keeps running detached.
        Its deadline is cancelled before the lock is released, and every later
        ``check_deadline`` on that thread raises, which keeps store writes from
        landing once another holder may own the key.
        """

        remaining = self.remaining()
        if remaining <= 0:
            raise LockTimeout(key=self.key, timeout=self.timeout, phase="running")
        deadline = LockDeadline(
            key=self.key,
            timeout=self.timeout,
            deadline=self._clock() + remaining,
            clock=self._clock,
        )
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="replaceable-lock"
        )
        try:
            future = executor.submit(_call_within, deadline, fn)
            try:
                return future.result(timeout=remaining)
            except concurrent.futures.TimeoutError:
                deadline.cancel()
                raise LockTimeout(key=self.key, timeout=self.timeout, phase="running") from None
        finally:
            executor.shutdown(wait=False)

    def __enter__(self) -> LockTicket:
        return self.acquire()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            self.release()
        except Exception:
            if exc_type is None:
                raise
            # The key still expires after timeout + grace.
            log.warning("Failed to release lock %s", self.key, exc_info=True)
        return False


def with_lock(
    backend: LockBackend,
    key: str,
    fn: Callable[[], T],
    *,
    timeout: float = DEFAULT_LOCK_TIMEOUT,
    grace: float = DEFAULT_LOCK_GRACE,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> T:
    lock = AdvisoryLock(
        backend, key, timeout=timeout, grace=grace, poll_interval=poll_interval
    )
    with lock:
        return lock.run(fn)


def lock_if(
    enabled: bool,  # noqa: FBT001
    backend: LockBackend | None,
    key: str,
    fn: Callable[[], T],
    *,
    timeout: float = DEFAULT_LOCK_TIMEOUT,
    grace: float = DEFAULT_LOCK_GRACE,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
) -> T:
    """Run ``fn`` under the advisory lock when ``enabled``, otherwise call it directly."""

    if not enabled:
        return fn()
    return with_lock(
        require_increment(backend),
        key,
        fn,
        timeout=timeout,
        grace=grace,
        poll_interval=poll_interval,
    )
