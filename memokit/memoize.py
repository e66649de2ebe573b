# memokit/memoize.py
from __future__ import annotations

import asyncio
import collections.abc
import functools
import json
import logging
import math
import numbers
import threading
from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Sequence

from .core.errors import InvalidArgument
from .core.scheduler import Cancellable, Scheduler, get_scheduler

logger = logging.getLogger(__name__)

Resolver = Callable[..., Hashable]

_UNSET: Any = object()


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=repr)


def _canonical(value: Any) -> Any:
    # dict keys become the JSON text of the key itself, so 1, "1" and (1, 2)
    # stay distinct and every key is a sortable str
    if isinstance(value, collections.abc.Mapping):
        return {_dumps(_canonical(k)): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    return value


def make_key(args: Sequence[Any], kwargs: Optional[Mapping[str, Any]] = None) -> str:
    """
    Canonical key for an argument list: ``[args]`` as compact JSON, or
    ``[args, kwargs]`` when there are keyword arguments. Dicts are compared by
    content regardless of key order or key type; values JSON can't encode fall
    back to their repr().
    """
    payload: list = [_canonical(args)]
    if kwargs:
        payload.append(_canonical(kwargs))
    return _dumps(payload)


class _Entry:
    __slots__ = ("value", "timer")

    def __init__(self, value: Any):
        self.value = value
        self.timer: Optional[Cancellable] = None


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return not math.isnan(value)


def memoize(
    func: Callable = _UNSET,
    resolver: Optional[Resolver] = _UNSET,
    timeout: float = _UNSET,
    *,
    scheduler: Optional[Scheduler] = None,
) -> Callable:
    """
    Wrap ``func`` so its results are cached per key for ``timeout`` milliseconds.

    The key is ``resolver(*args, **kwargs)`` when a resolver is given, otherwise
    make_key() of the call arguments. ``memoize(func, timeout)`` is accepted as a
    shorthand with no resolver.

    Each stored result gets its own expiry timer; when it fires it removes that
    entry only, never one stored later under the same key. Exceptions from
    ``func`` propagate and are not cached. Coroutines are wrapped in a task and
    the task is cached, so concurrent awaiters share one computation; a task
    that fails or is cancelled is dropped from the cache. Coroutine functions
    must therefore be called from a running event loop.

    Resolver keys must be hashable.
    """
    # None counts as "not given" for both positions
    if timeout is _UNSET or timeout is None:
        if resolver is _UNSET or resolver is None:
            raise InvalidArgument("memoize function should have at least two given arguments")
        # memoize(func, timeout)
        resolver, timeout = None, resolver
    if resolver is _UNSET:
        resolver = None

    if not _is_number(timeout):
        raise InvalidArgument("timeout must be a number")
    if not callable(func):
        raise InvalidArgument("func must be a function")
    if resolver is not None and not callable(resolver):
        raise InvalidArgument("resolver must be a function")

    scheduler = scheduler or get_scheduler()
    name = getattr(func, "__qualname__", repr(func))
    cache: Dict[Hashable, _Entry] = {}
    lock = threading.RLock()

    def key_for(args: tuple, kwargs: dict) -> Hashable:
        if resolver is None:
            return make_key(args, kwargs)
        key = resolver(*args, **kwargs)
        try:
            hash(key)
        except TypeError:
            raise InvalidArgument(
                f"resolver must return a hashable key, got {type(key).__name__}"
            ) from None
        return key

    def start(coro: Any) -> asyncio.Task:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            raise RuntimeError(
                f"{name} returned a coroutine outside a running event loop"
            ) from None
        return loop.create_task(coro)

    def evict(key: Hashable, entry: _Entry, reason: str) -> None:
        with lock:
            if cache.get(key) is entry:
                del cache[key]
                logger.debug("%s: %s %r", name, reason, key)

    def watch(key: Hashable, entry: _Entry, fut: asyncio.Future) -> None:
        def _done(f: asyncio.Future) -> None:
            if f.cancelled() or f.exception() is not None:
                evict(key, entry, "dropped failed result for")
        fut.add_done_callback(_done)

    @functools.wraps(func)
    def wrapped(*args, **kwargs):
        key = key_for(args, kwargs)
        with lock:
            entry = cache.get(key)
        if entry is not None:
            logger.debug("%s: hit %r", name, key)
            return entry.value

        logger.debug("%s: miss %r", name, key)
        result = func(*args, **kwargs)
        if asyncio.iscoroutine(result):
            result = start(result)

        entry = _Entry(result)
        with lock:
            cache[key] = entry
        try:
            entry.timer = scheduler.call_later(timeout, lambda: evict(key, entry, "expired"))
        except Exception:
            # an entry without a timer would never expire
            evict(key, entry, "dropped unscheduled")
            raise
        if isinstance(result, asyncio.Future):
            watch(key, entry, result)
        return result

    return wrapped


def ttl_memoize(
    timeout: float,
    resolver: Optional[Resolver] = None,
    *,
    scheduler: Optional[Scheduler] = None,
) -> Callable[[Callable], Callable]:
    """Decorator form of memoize(): ``@ttl_memoize(5000)``."""
    def decorator(func: Callable) -> Callable:
        return memoize(func, resolver, timeout, scheduler=scheduler)
    return decorator
