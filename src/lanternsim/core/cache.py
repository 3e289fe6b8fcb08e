"""
Computed cache: memoization of expensive derived artifacts.

Network analysis, the page graph, the load simulator and each metric are
pure functions of their inputs. Within one analysis context we compute each
of them at most once, even when several metrics request them concurrently:
the first caller computes, later callers wait on the same Future.

Failures are never cached; every waiter sees the exception and the next
request recomputes.
"""

from __future__ import annotations

import dataclasses
import functools
import threading
from concurrent.futures import Future
from typing import Any, Callable, Hashable, Mapping, TypeVar

T = TypeVar("T")


def _freeze(value: Any) -> Hashable:
    """Convert value into a hashable, content-derived form."""
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    if isinstance(value, Mapping):
        return tuple(sorted((key, _freeze(item)) for key, item in value.items()))
    if isinstance(value, (set, frozenset)):
        return frozenset(_freeze(item) for item in value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        try:
            hash(value)
            return value
        except TypeError:
            return (type(value).__name__,) + tuple(
                (f.name, _freeze(getattr(value, f.name))) for f in dataclasses.fields(value)
            )
    return value


def cache_key(name: str, *parts: Any) -> Hashable:
    """Content-derived key for artifact name computed from parts."""
    return (name,) + tuple(_freeze(part) for part in parts)


class ComputedCache:
    """Thread-safe memo table of artifact values keyed by content."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[Hashable, Future] = {}
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key: Hashable, compute: Callable[[], T]) -> T:
        """
        Return the cached value for key, computing it once if needed.

        Concurrent callers for the same key share one computation.
        """
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._entries[key] = future
                self.misses += 1
            else:
                self.hits += 1

        if not owner:
            return future.result()

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                self._entries.pop(key, None)
            future.set_exception(exc)
            raise
        future.set_result(value)
        return value

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            future = self._entries.get(key)
        return future is not None and future.done()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0


def computed_artifact(name: str):
    """
    Give a pure function a memoized ``.request(*args, cache=...)`` entry point.

    Without a cache, ``.request`` just calls the function.
    """

    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def request(*args: Any, cache: ComputedCache | None = None) -> T:
            if cache is None:
                return fn(*args)
            return cache.get_or_compute(cache_key(name, *args), lambda: fn(*args))

        fn.request = request
        fn.artifact_name = name
        return fn

    return decorator
