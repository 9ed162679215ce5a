"""Package handlers: auto-registered on import."""

from vulnfixer.engines.package_handlers import (
    go,  # noqa: F401
    maven,  # noqa: F401
    npm,  # noqa: F401
    nuget,  # noqa: F401
    python,  # noqa: F401
)
from vulnfixer.engines.package_handlers.registry import (
    HANDLER_REGISTRY,
    HandlerCache,
    HandlerContext,
    PackageHandler,
    get_compatible_handler,
    register_handler,
)

__all__ = [
    "HANDLER_REGISTRY",
    "HandlerCache",
    "HandlerContext",
    "PackageHandler",
    "get_compatible_handler",
    "register_handler",
]
