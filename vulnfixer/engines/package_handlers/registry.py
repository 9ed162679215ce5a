"""Handler registry: map a technology tag to the package handler that upgrades it."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from vulnfixer.engines.fix_versions.models import FixCandidate


@dataclass(frozen=True)
class HandlerContext:
    """Per-project settings a handler may need."""

    project_dir: Path
    pip_requirements_file: str | None = None


@runtime_checkable
class PackageHandler(Protocol):
    """Interface that every package handler must satisfy.

    ``update_dependency`` mutates the working tree (the current directory is
    the project directory) or raises ``UnsupportedFixError`` /
    ``PackageHandlerError``.
    """

    technology: str

    def update_dependency(self, candidate: FixCandidate) -> None: ...


class HandlerFactory(Protocol):
    def __call__(self, technology: str, context: HandlerContext) -> PackageHandler: ...


HANDLER_REGISTRY: dict[str, HandlerFactory] = {}


def register_handler(technology: str, factory: HandlerFactory) -> None:
    """Register a handler factory under a technology tag."""
    HANDLER_REGISTRY[technology] = factory


def get_compatible_handler(technology: str, context: HandlerContext) -> PackageHandler:
    """Build the handler for *technology*, falling back to the unsupported handler."""
    from vulnfixer.engines.package_handlers.unsupported import UnsupportedPackageHandler

    factory = HANDLER_REGISTRY.get(technology)
    if factory is None:
        return UnsupportedPackageHandler(technology, context)
    return factory(technology, context)


class HandlerCache:
    """Memoize handlers per (technology, project directory).

    Handlers carry per-project state such as the Maven property index, so
    one instance serves every package of that technology in the project.
    """

    def __init__(self, factory: HandlerFactory = get_compatible_handler) -> None:
        self._factory = factory
        self._handlers: dict[tuple[str, Path], PackageHandler] = {}

    def get(self, technology: str, context: HandlerContext) -> PackageHandler:
        key = (technology, context.project_dir)
        handler = self._handlers.get(key)
        if handler is None:
            handler = self._factory(technology, context)
            self._handlers[key] = handler
        return handler

    def __len__(self) -> int:
        return len(self._handlers)
