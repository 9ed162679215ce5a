"""JavaScript package managers: npm and yarn."""

from __future__ import annotations

from vulnfixer.engines.package_handlers.common import CommonPackageHandler
from vulnfixer.engines.package_handlers.registry import register_handler


class NpmPackageHandler(CommonPackageHandler):
    executable = "npm"
    install_args = ("install",)
    operator = "@"


class YarnPackageHandler(CommonPackageHandler):
    executable = "yarn"
    install_args = ("up",)
    operator = "@"


register_handler("npm", NpmPackageHandler)
register_handler("yarn", YarnPackageHandler)
