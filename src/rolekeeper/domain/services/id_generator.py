"""Identifier generator for users and roles.

Identifiers are positive integers handed out in increasing order. An
identifier is never reissued within the lifetime of a generator, even after
the entity that held it is deleted.
"""

import threading


class IdGenerator:
    """Monotonic integer id source.

    One generator is used per entity kind, so user ids and role ids are
    independent sequences.

    Example:
        >>> ids = IdGenerator()
        >>> ids.next(), ids.next()
        (1, 2)
    """

    def __init__(self, start: int = 1) -> None:
        if start < 1:
            raise ValueError("Identifiers start at 1 or above")
        self._next = start
        self._lock = threading.Lock()

    def next(self) -> int:
        """Issue the next identifier."""
        with self._lock:
            issued = self._next
            self._next += 1
            return issued
