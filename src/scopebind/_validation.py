"""Conformance checks between class/Protocol tokens and what gets bound to them."""

from __future__ import annotations

import inspect
import typing
from typing import Any, Protocol, cast, get_type_hints


if hasattr(typing, "is_protocol"):

    def is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: object) -> bool:
        # non-protocol subclasses of a protocol carry _is_protocol = False
        return inspect.isclass(tp) and tp is not Protocol and bool(tp.__dict__.get("_is_protocol", False))


def is_runtime_checkable(tp: object) -> bool:
    if not is_protocol(tp):
        return False

    try:
        isinstance(None, cast("type", tp))
    except TypeError:
        return False
    else:
        return True


def check_impl(token: type, impl: type) -> None:
    """Raise TypeError unless `impl` may be registered for the class token.

    Plain classes and ABCs require a subclass. Protocols accept nominal
    subclasses or a structural match.
    """
    if not is_protocol(token):
        if not (inspect.isclass(impl) and issubclass(impl, token)):
            msg = f"Implementation {_name(impl)} must be a subclass of {token.__name__}"
            raise TypeError(msg)
        return

    if token in getattr(impl, "__mro__", ()):
        return

    _check_structure(token, impl)


def check_instance(token: type, instance: object) -> None:
    """Raise TypeError unless `instance` satisfies the class token."""
    if not is_protocol(token):
        if not isinstance(instance, token):
            msg = f"Resolved instance {type(instance).__name__} is not an instance of {token.__name__}"
            raise TypeError(msg)
        return

    try:
        check_impl(token, type(instance))
    except TypeError as e:
        msg = f"Resolved instance {type(instance).__name__} does not conform to protocol {token.__name__}"
        raise TypeError(msg) from e

    if is_runtime_checkable(token) and not isinstance(instance, token):
        msg = f"Resolved instance {type(instance).__name__} does not implement runtime protocol {token.__name__}"
        raise TypeError(msg)


def _check_structure(proto: type, impl: type) -> None:
    missing: list[str] = []
    mismatches: list[str] = []

    try:
        annotated = get_type_hints(proto)
    except (NameError, TypeError):
        annotated = {}

    for name in annotated:
        if not name.startswith("_") and not hasattr(impl, name):
            missing.append(name)

    for name, member in proto.__dict__.items():
        if name.startswith("_") or not inspect.isfunction(member):
            continue

        if not hasattr(impl, name):
            missing.append(name)
            continue

        impl_member = getattr(impl, name)
        if not callable(impl_member):
            mismatches.append(f"{name}: not callable on {impl.__name__}")
            continue

        problem = _compare_signatures(member, impl_member)
        if problem:
            mismatches.append(f"{name}: {problem}")

    if missing or mismatches:
        parts = []
        if missing:
            parts.append(f"missing members: {', '.join(missing)}")
        if mismatches:
            parts.append(f"signature mismatches: {', '.join(mismatches)}")

        msg = (
            f"Implementation {impl.__name__} does not structurally conform to protocol "
            f"{proto.__name__}: {'; '.join(parts)}"
        )
        raise TypeError(msg)


def _compare_signatures(proto_fn: Any, impl_fn: Any) -> str | None:
    try:
        proto_sig = inspect.signature(proto_fn)
        impl_sig = inspect.signature(impl_fn)
    except (TypeError, ValueError) as e:
        return f"unable to compare signatures ({e})"

    proto_arity = _required_positional(proto_sig)
    impl_arity = _required_positional(impl_sig)
    if impl_arity < proto_arity:
        return f"impl has fewer required positional params ({impl_arity}) than protocol ({proto_arity})"

    proto_ret = proto_sig.return_annotation
    impl_ret = impl_sig.return_annotation
    if (
        proto_ret is not inspect.Signature.empty
        and impl_ret is not inspect.Signature.empty
        and Any not in (proto_ret, impl_ret)
        and not _returns_compatible(impl_ret, proto_ret)
    ):
        return f"return type {impl_ret!r} is not compatible with protocol return type {proto_ret!r}"

    return None


def _required_positional(sig: inspect.Signature) -> int:
    return sum(
        1
        for p in sig.parameters.values()
        if p.name != "self"
        and p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        and p.default is p.empty
    )


def _returns_compatible(impl_ret: object, proto_ret: object) -> bool:
    if impl_ret == proto_ret:
        return True

    if isinstance(impl_ret, type) and isinstance(proto_ret, type):
        return issubclass(impl_ret, proto_ret)

    # unions, typevars, string annotations...: be strict
    return False


def _name(obj: object) -> str:
    return getattr(obj, "__name__", repr(obj))
