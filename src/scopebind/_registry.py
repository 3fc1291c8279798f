from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from ._errors import UnregisteredToken


if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence


logger = logging.getLogger(__name__)

_MISSING: Any = object()


class Lifetime(Enum):
    SINGLETON = "singleton"
    SCOPED = "scoped"
    TRANSIENT = "transient"

    @property
    def cached(self) -> bool:
        return self is not Lifetime.TRANSIENT


@dataclass(frozen=True)
class Registration:
    """How a token is turned into an instance.

    Exactly one of `factory`, `impl` or `instance` is set.
    `dependencies` only applies to `impl` registrations.
    `validate` is False for overrides: test doubles are accepted as-is.
    """

    token: Any
    factory: Callable[..., object] | None = None
    impl: type | None = None
    instance: object = _MISSING
    lifetime: Lifetime = Lifetime.SINGLETON
    dependencies: Sequence[Any] | Mapping[str, Any] | None = None
    validate: bool = True

    @property
    def kind(self) -> str:
        if self.factory is not None:
            return "factory"
        if self.impl is not None:
            return "class"
        return "constant"

    @property
    def is_constant(self) -> bool:
        return self.instance is not _MISSING


class Registry:
    """Token -> Registration map that defers to a parent registry on a miss."""

    def __init__(self, parent: Registry | None = None) -> None:
        self._parent = parent
        self._entries: dict[Any, Registration] = {}

    def register(self, registration: Registration) -> Registration | None:
        """Add or replace the local entry. Returns the replaced entry, if any."""
        previous = self._entries.get(registration.token)
        self._entries[registration.token] = registration
        logger.debug(
            "registered %r as %s (%s)",
            registration.token,
            registration.kind,
            registration.lifetime.value,
        )
        return previous

    def is_local(self, token: Any) -> bool:
        return token in self._entries

    def lookup(self, token: Any) -> Registration:
        registry: Registry | None = self
        while registry is not None:
            reg = registry._entries.get(token)  # noqa: SLF001
            if reg is not None:
                return reg
            registry = registry._parent  # noqa: SLF001

        raise UnregisteredToken(token)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, token: object) -> bool:
        try:
            self.lookup(token)
        except UnregisteredToken:
            return False
        return True
