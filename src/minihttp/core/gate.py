"""
=============================================================================
CONCURRENCY GATE
=============================================================================

Admission control for the accept loop: a counting semaphore with a fixed
capacity. The acceptor takes one slot before starting a handler thread;
the handler thread gives it back when it finishes, on every exit path.

    accept() ──► gate.acquire() ──► Thread(handle) ──► ... ──► gate.release()
                     │
                     └── all slots busy? the ACCEPT LOOP blocks here.
                         New clients wait in the kernel's listen backlog;
                         nobody is turned away with a 503.

Note that acquire and release happen on DIFFERENT threads (acceptor vs
handler), so this is not a `with` block. threading.BoundedSemaphore is
fine with that, and it raises ValueError if a slot is released twice,
which turns a slot-accounting bug into a loud error.

=============================================================================
"""

import threading
from typing import Optional


class ConcurrencyGate:
    """
    Bounded counting semaphore with in-flight accounting.

    Attributes:
        capacity: Maximum number of simultaneous holders.
        in_flight: Current number of holders.
        peak: Highest in_flight ever observed.

    Usage:
        gate = ConcurrencyGate(10)
        if gate.acquire(timeout=1.0):
            ...hand the slot to a worker, which calls gate.release()
    """

    DEFAULT_CAPACITY = 10

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._peak = 0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def peak(self) -> int:
        with self._lock:
            return self._peak

    @property
    def available(self) -> int:
        return self.capacity - self.in_flight

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Take one slot, blocking while all slots are in use.

        Args:
            timeout: Seconds to wait; None waits forever.

        Returns:
            True if a slot was taken, False on timeout.
        """
        if not self._semaphore.acquire(timeout=timeout):
            return False
        with self._lock:
            self._in_flight += 1
            self._peak = max(self._peak, self._in_flight)
        return True

    def release(self) -> None:
        """
        Give one slot back.

        Raises:
            ValueError: More releases than acquires.
        """
        with self._lock:
            if self._in_flight == 0:
                raise ValueError("ConcurrencyGate released too many times")
            self._in_flight -= 1
        self._semaphore.release()

    def __repr__(self) -> str:
        return f"ConcurrencyGate(capacity={self.capacity}, in_flight={self.in_flight})"
