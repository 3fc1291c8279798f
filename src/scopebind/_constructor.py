from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, TypeVar, get_type_hints

from ._errors import ResolutionError


if TYPE_CHECKING:
    from collections.abc import Sequence

    from ._container import Container


logger = logging.getLogger(__name__)

T = TypeVar("T")

_VARIADIC = (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD)


class Constructor:
    """Builds a registered class, resolving its `__init__` parameters through a scope.

    Parameter precedence:
    1. explicit keyword passed to `resolve`
    2. declared dependency (`dependencies=` at registration, else `__inject__`)
    3. type annotation registered in the scope chain
    4. parameter name registered as a string token
    5. default value
    6. error.
    """

    def __init__(self, scope: Container) -> None:
        self._scope = scope

    def construct(
        self,
        cls: type[T],
        dependencies: Sequence[Any] | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> T:
        if cls.__init__ is object.__init__ and not overrides:
            return cls()

        sig = inspect.signature(cls)
        params = sig.parameters

        overrides.pop("self", None)
        keyword, posonly = self._split_positional_only(overrides, params)
        bound = self._bind_explicit(sig, keyword, cls)
        bound.arguments.update(posonly)

        declared = self._declared_tokens(cls, params, dependencies)
        self._fill_missing_arguments(cls, sig, bound, declared)

        args, kwargs = self._materialize_call(sig, bound)
        return cls(*args, **kwargs)

    def _declared_tokens(
        self,
        cls: type,
        params: Mapping[str, inspect.Parameter],
        dependencies: Sequence[Any] | Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        if dependencies is None:
            dependencies = getattr(cls, "__inject__", None)
        if dependencies is None:
            return {}

        if isinstance(dependencies, Mapping):
            unknown = [name for name in dependencies if name not in params]
            if unknown:
                msg = f"{cls.__name__} has no parameter(s) named {', '.join(unknown)}"
                raise TypeError(msg)
            return dict(dependencies)

        if isinstance(dependencies, str):
            dependencies = (dependencies,)

        names = [name for name, p in params.items() if p.kind not in _VARIADIC]
        if len(dependencies) > len(names):
            msg = f"{cls.__name__} declares {len(dependencies)} dependencies but accepts {len(names)} parameters"
            raise TypeError(msg)

        return dict(zip(names, dependencies))

    def _fill_missing_arguments(
        self,
        cls: type,
        sig: inspect.Signature,
        bound: inspect.BoundArguments,
        declared: dict[str, Any],
    ) -> None:
        hints = _get_init_type_hints(cls)

        for name, p in sig.parameters.items():
            if p.kind in _VARIADIC or name in bound.arguments:
                continue

            if name in declared:
                bound.arguments[name] = self._scope.resolve(declared[name])
            else:
                bound.arguments[name] = self._resolve_param(cls, name, p, hints)

    def _resolve_param(self, cls: type, name: str, p: inspect.Parameter, hints: dict[str, Any]) -> Any:
        ann = hints.get(name, inspect.Parameter.empty)

        if ann is not inspect.Parameter.empty and self._registered(ann):
            return self._scope.resolve(ann)

        if self._registered(name):
            return self._scope.resolve(name)

        if p.default is not inspect.Parameter.empty:
            return p.default

        ann_repr = getattr(ann, "__name__", repr(ann)) if ann is not inspect.Parameter.empty else "no-annotation"
        msg = (
            f"Cannot satisfy constructor parameter '{name}' for {cls.__name__}. "
            f"No override/registration/default found (annotation: {ann_repr})."
        )
        raise ResolutionError(msg)

    def _registered(self, token: Any) -> bool:
        try:
            return self._scope.is_registered(token)
        except TypeError:
            # unhashable annotation such as a parametrized alias with a list inside
            return False

    def _split_positional_only(
        self,
        overrides: dict[str, Any],
        params: Mapping[str, inspect.Parameter],
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        pos_only = {name for name, p in params.items() if p.kind is inspect.Parameter.POSITIONAL_ONLY}

        keyword = {k: v for k, v in overrides.items() if k not in pos_only}
        positional = {k: v for k, v in overrides.items() if k in pos_only}
        return keyword, positional

    def _bind_explicit(self, sig: inspect.Signature, kw: dict[str, Any], cls: type) -> inspect.BoundArguments:
        try:
            return sig.bind_partial(**kw)
        except TypeError as e:
            msg = f"Overrides don't match {cls.__name__} signature: {e}"
            raise TypeError(msg) from e

    def _materialize_call(
        self, sig: inspect.Signature, bound: inspect.BoundArguments
    ) -> tuple[list[Any], dict[str, Any]]:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        extra_args: tuple[Any, ...] = ()
        extra_kwargs: dict[str, Any] = {}

        for name, p in sig.parameters.items():
            if p.kind is p.POSITIONAL_ONLY:
                args.append(bound.arguments[name])
            elif p.kind is p.VAR_POSITIONAL:
                extra_args = tuple(bound.arguments.get(name, ()))
            elif p.kind is p.VAR_KEYWORD:
                extra_kwargs = dict(bound.arguments.get(name, {}))
            else:
                kwargs[name] = bound.arguments[name]

        args.extend(extra_args)
        kwargs.update(extra_kwargs)
        return args, kwargs


def _get_init_type_hints(cls: type) -> dict[str, Any]:
    try:
        init = inspect.getattr_static(cls, "__init__")
        hints = get_type_hints(init)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s (%s) type hints", exc.name, cls.__name__, cls.__qualname__)
        hints = {}

    return hints
