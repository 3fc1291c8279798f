from __future__ import annotations

from typing import Any


class ResolutionError(RuntimeError):
    pass


class UnregisteredToken(ResolutionError, KeyError):
    """No registration for the token in the scope or any of its ancestors."""

    def __init__(self, token: Any) -> None:
        self.token = token
        msg = f"No registration found for token: {_token_repr(token)}"
        super().__init__(msg)

    def __str__(self) -> str:
        # KeyError would repr() the message
        return str(self.args[0])


class CircularDependency(ResolutionError):
    """A token transitively depends on itself.

    `cycle` holds the tokens along the dependency path, starting and ending with
    the repeated token.
    """

    def __init__(self, cycle: tuple[Any, ...]) -> None:
        self.cycle = cycle
        path = " -> ".join(_token_repr(t) for t in cycle)
        msg = f"Circular dependency detected: {path}"
        super().__init__(msg)


def _token_repr(token: Any) -> str:
    if isinstance(token, type):
        return token.__qualname__
    return repr(token)
