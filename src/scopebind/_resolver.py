from __future__ import annotations

import inspect
import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, cast

from ._constructor import Constructor
from ._errors import CircularDependency, ResolutionError, UnregisteredToken
from ._registry import Lifetime
from ._validation import check_instance


if TYPE_CHECKING:
    from collections.abc import Iterator

    from ._container import Container
    from ._registry import Registration


logger = logging.getLogger(__name__)

# (scope, token) pairs under construction on the current thread
_resolving = threading.local()

_EMPTY: Any = object()

# cross-thread wait-for graph: (scope, token) -> owning thread, thread -> (scope, token) it waits on
_graph_lock = threading.Lock()
_owners: dict[tuple[Any, Any], int] = {}
_waiting: dict[int, tuple[Any, Any]] = {}


def _current_path() -> list[tuple[Container, Any]]:
    path = getattr(_resolving, "path", None)
    if path is None:
        path = _resolving.path = []
    return path


class Resolver:
    """Per-scope instance cache plus the resolution algorithm.

    Registrations are looked up through the scope chain, but dependencies are
    always resolved through the scope that started the resolution, and cached
    instances land in that scope's cache only.
    """

    def __init__(self, scope: Container) -> None:
        self._scope = scope
        self._cache: dict[Any, object] = {}
        self._locks: dict[Any, threading.RLock] = {}
        self._lock = threading.RLock()

    def resolve(self, token: Any, kwargs: dict[str, Any]) -> object:
        try:
            return self._cache[token]
        except KeyError:
            pass

        reg = self._scope.registry.lookup(token)

        if reg.lifetime is Lifetime.SCOPED and self._scope.parent is None:
            msg = f"Token {token!r} is registered as scoped and must be resolved from a child scope"
            raise ResolutionError(msg)

        with self._tracking(token):
            if not (reg.is_constant or reg.lifetime.cached):
                return self._build(reg, kwargs)

            with self._construction(token):
                # another thread may have finished while we waited
                if token in self._cache:
                    return self._cache[token]

                instance = self._build(reg, kwargs)
                with self._lock:
                    # an override registered meanwhile must not be shadowed by a stale instance
                    if self._still_registered(token, reg):
                        self._cache[token] = instance
                        logger.debug("cached %r in %r", token, self._scope)
                return instance

    def replace(self, reg: Registration) -> bool:
        """Store `reg` in the scope registry and drop the cached instance for its token.

        Returns whether an instance was dropped.
        """
        with self._lock:
            self._scope.registry.register(reg)
            return self._cache.pop(reg.token, _EMPTY) is not _EMPTY

    def _still_registered(self, token: Any, reg: Registration) -> bool:
        try:
            return self._scope.registry.lookup(token) is reg
        except UnregisteredToken:
            # scope closed while building
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._locks.clear()

    def _build(self, reg: Registration, kwargs: dict[str, Any]) -> object:
        if reg.is_constant:
            return reg.instance

        if reg.factory is not None:
            instance = reg.factory(self._scope, **kwargs)
            if reg.validate and inspect.isclass(reg.token):
                check_instance(reg.token, instance)
            return instance

        return Constructor(self._scope).construct(cast("type", reg.impl), reg.dependencies, **kwargs)

    def _lock_for(self, token: Any) -> threading.RLock:
        with self._lock:
            lock = self._locks.get(token)
            if lock is None:
                lock = self._locks[token] = threading.RLock()
            return lock

    @contextmanager
    def _tracking(self, token: Any) -> Iterator[None]:
        path = _current_path()
        key = (self._scope, token)

        for i, (scope, seen) in enumerate(path):
            if scope is self._scope and seen == token:
                cycle = tuple(t for _, t in path[i:]) + (token,)
                raise CircularDependency(cycle)

        path.append(key)
        try:
            yield
        finally:
            path.pop()


    @contextmanager
    def _construction(self, token: Any) -> Iterator[None]:
        """Hold the construction lock for `token`, failing instead of waiting on a cross-thread cycle."""
        key = (self._scope, token)
        me = threading.get_ident()
        lock = self._lock_for(token)

        with _graph_lock:
            owner = _owners.get(key)
            if owner is not None and owner != me:
                _raise_if_waits_on(me, key, owner)
            _waiting[me] = key

        try:
            lock.acquire()
        finally:
            with _graph_lock:
                _waiting.pop(me, None)

        with _graph_lock:
            _owners[key] = me
        try:
            yield
        finally:
            with _graph_lock:
                _owners.pop(key, None)
            lock.release()


def _raise_if_waits_on(me: int, key: tuple[Any, Any], owner: int) -> None:
    """Follow who `owner` waits on; raise if the chain ends at a lock held by `me`.

    Must be called with `_graph_lock` held.
    """
    chain = [key]
    thread: int | None = owner
    seen: set[int] = set()

    while thread is not None and thread not in seen:
        seen.add(thread)
        wanted = _waiting.get(thread)
        if wanted is None:
            return

        holder = _owners.get(wanted)
        if holder == me:
            tokens = (wanted[1], *(token for _, token in chain), wanted[1])
            raise CircularDependency(tokens)

        chain.append(wanted)
        thread = holder
