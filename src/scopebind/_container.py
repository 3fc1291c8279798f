from __future__ import annotations

import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, overload

from ._errors import ResolutionError
from ._registry import _MISSING, Lifetime, Registration, Registry
from ._resolver import Resolver
from ._validation import check_impl, check_instance


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence
    from types import TracebackType

    T = TypeVar("T")
    # Parameter spec for factories
    P = ParamSpec("P")

    Token = type[T] | str
    Dependencies = Sequence[Any] | Mapping[str, Any]


logger = logging.getLogger(__name__)


class Container:
    """Root dependency container, the application scope.

    - register classes, factories or pre-built instances under type or string tokens
    - resolve with constructor injection for registered classes
    - lifetimes: singleton / scoped / transient
    - child scopes for per-request or per-test overrides.
    """

    def __init__(self, *, default_lifetime: Lifetime = Lifetime.SINGLETON) -> None:
        self._parent: Container | None = None
        self._default_lifetime = default_lifetime
        self._registry = Registry()
        self._resolver = Resolver(self)
        self._lock = threading.RLock()
        self._closed = False

    @property
    def parent(self) -> Container | None:
        return self._parent

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def default_lifetime(self) -> Lifetime:
        return self._default_lifetime

    @overload
    def register(
        self,
        token: type[T],
        impl: type[T],
        *,
        factory: None = ...,
        lifetime: Lifetime | None = ...,
        dependencies: Dependencies | None = ...,
    ) -> None: ...

    @overload
    def register(
        self,
        token: type[T],
        impl: None = ...,
        *,
        factory: Callable[P, T],
        lifetime: Lifetime | None = ...,
        dependencies: None = ...,
    ) -> None: ...

    @overload
    def register(
        self,
        token: str,
        impl: type | None = ...,
        *,
        factory: Callable[..., Any] | None = ...,
        lifetime: Lifetime | None = ...,
        dependencies: Dependencies | None = ...,
    ) -> None: ...

    def register(
        self,
        token: Token[T],
        impl: type | None = None,
        *,
        factory: Callable[..., Any] | None = None,
        lifetime: Lifetime | None = None,
        dependencies: Dependencies | None = None,
    ) -> None:
        """Register a concrete type or a factory for a token.

        Example:
          container.register(IFoo, FooImpl)
          container.register("db", factory=create_db, lifetime=Lifetime.SINGLETON)
          container.register("repo", Repository, dependencies=["db"])

        Factories are called as `factory(scope, **kwargs)` with the scope the
        resolution started from. Registering a token again replaces the previous
        registration in this scope and drops the instance this scope cached for it.
        """
        reg = self._make_registration(token, impl, factory, lifetime, dependencies, validate=True)

        if impl is not None and inspect.isclass(token):
            # string tokens cannot be validated statically
            check_impl(token, impl)

        self._store(reg)

    def register_instance(
        self,
        token: Token[T],
        instance: object,
        *,
        replace: bool = False,
    ) -> None:
        """Register a pre-built instance (always singleton)."""
        if inspect.isclass(token):
            check_instance(token, instance)

        with self._lock:
            if not replace and self._registry.is_local(token):
                msg = f"Token {token!r} is already registered. Pass replace=True to overwrite."
                raise KeyError(msg)
            self._store(Registration(token=token, instance=instance, lifetime=Lifetime.SINGLETON))

    def override(
        self,
        token: Token[T],
        instance: object = _MISSING,
        *,
        impl: type | None = None,
        factory: Callable[..., Any] | None = None,
        lifetime: Lifetime | None = None,
        dependencies: Dependencies | None = None,
    ) -> None:
        """Replace how `token` is resolved from this scope, typically with a test double.

        Exactly one of `instance`, `impl` or `factory` is required. The instance
        cached for `token` in this scope is dropped so the next resolution uses
        the replacement; parent scopes are never touched. Nothing is validated
        against the token's type.

        Instances already built in this scope keep whatever they were given
        before the override, so override before resolving anything that
        depends on `token`.
        """
        given = sum(x is not None for x in (impl, factory)) + (instance is not _MISSING)
        if given != 1:
            msg = "Provide exactly one of `instance`, `impl` or `factory`."
            raise ValueError(msg)

        if instance is not _MISSING:
            reg = Registration(token=token, instance=instance, lifetime=Lifetime.SINGLETON, validate=False)
        else:
            reg = self._make_registration(token, impl, factory, lifetime, dependencies, validate=False)

        self._store(reg)
        logger.debug("overrode %r in %r", token, self)

    @overload
    def resolve(self, token: type[T], **kwargs: Any) -> T: ...

    @overload
    def resolve(self, token: str, **kwargs: Any) -> object: ...

    def resolve(self, token: Token[T], **kwargs: Any) -> object:
        """Resolve the token to an instance.

        - Cached instances of this scope are returned as-is.
        - Otherwise the registration is looked up here, then in each ancestor.
        - Dependencies are resolved through this scope, so overrides made here
          reach every level of the object graph.
        `kwargs` are passed to the constructor or factory when a new instance is built.
        """
        if self._closed:
            msg = f"{type(self).__name__} is closed"
            raise ResolutionError(msg)
        return self._resolver.resolve(token, kwargs)

    def is_registered(self, token: Any, *, local: bool = False) -> bool:
        if local:
            return self._registry.is_local(token)
        return token in self._registry

    def create_child(self) -> Scope:
        """Create a scope that prefers its own registrations/instances, falls back to parent registrations."""
        return Scope(self, _from_parent=True)

    def _make_registration(
        self,
        token: Any,
        impl: type | None,
        factory: Callable[..., Any] | None,
        lifetime: Lifetime | None,
        dependencies: Dependencies | None,
        *,
        validate: bool,
    ) -> Registration:
        if impl is not None and factory is not None:
            msg = "Provide either `impl` or `factory`, not both."
            raise ValueError(msg)

        if impl is None and factory is None:
            msg = "Either `impl` or `factory` must be provided."
            raise ValueError(msg)

        if impl is not None and not inspect.isclass(impl):
            msg = f"`impl` must be a class, got {impl!r}"
            raise TypeError(msg)

        if dependencies is not None and impl is None:
            msg = "`dependencies` only apply to class registrations."
            raise ValueError(msg)

        return Registration(
            token=token,
            factory=factory,
            impl=impl,
            lifetime=lifetime or self._default_lifetime,
            dependencies=dependencies,
            validate=validate,
        )

    def _store(self, reg: Registration) -> None:
        with self._lock:
            if self._resolver.replace(reg):
                logger.debug("dropped cached %r in %r", reg.token, self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} at {id(self):#x}>"


class Scope(Container):
    """A child container: its own registrations and cache, falling back to the parent's registrations.

    Useful for per-request/per-test lifetimes without altering root registrations.
    Use as a context manager to drop everything the scope built when done.
    """

    def __init__(self, parent: Container, *, _from_parent: bool = False) -> None:
        if not _from_parent:
            msg = "Scope instances must be created via Container.create_child()"
            raise RuntimeError(msg)
        super().__init__(default_lifetime=parent.default_lifetime)
        self._parent = parent
        self._registry = Registry(parent=parent.registry)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Forget local registrations and cached instances. The parent is unaffected."""
        with self._lock:
            self._closed = True
            self._resolver.clear()
            self._registry.clear()

    def __enter__(self) -> Scope:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
