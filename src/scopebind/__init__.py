"""Dependency injection container with child scopes for test overrides.

This package provides a small inversion-of-control container for Python: register
types, factories and pre-built instances under type or string tokens, resolve them
with constructor injection and configurable lifetimes, and derive child scopes that
override any node of the object graph without touching the parent.

Exports:
- `Container`: Root (application) container supporting registration and resolution.
- `Scope`: Child container created with `Container.create_child()`. Its overrides
  apply transitively to everything resolved through it; its cache is its own.
- `Lifetime`: Enum controlling instance caching (singleton, scoped or transient).
- `ResolutionError`, `UnregisteredToken`, `CircularDependency`: resolution failures.
"""

from ._container import Container, Scope
from ._errors import CircularDependency, ResolutionError, UnregisteredToken
from ._registry import Lifetime, Registration


__all__ = [
    "CircularDependency",
    "Container",
    "Lifetime",
    "Registration",
    "ResolutionError",
    "Scope",
    "UnregisteredToken",
]
