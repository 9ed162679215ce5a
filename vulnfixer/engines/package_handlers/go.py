"""Go modules: ``go get <module>@v<version>``, direct and indirect."""

from __future__ import annotations

from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.engines.fix_versions.versions import strip_version_prefix
from vulnfixer.engines.package_handlers.common import CommonPackageHandler
from vulnfixer.engines.package_handlers.registry import register_handler


class GoPackageHandler(CommonPackageHandler):
    executable = "go"
    install_args = ("get",)
    operator = "@v"
    # go get resolves transitive modules into go.mod as // indirect
    supports_indirect = True

    def install_command(self, candidate: FixCandidate) -> list[str]:
        # module paths are case-sensitive
        version = strip_version_prefix(candidate.suggested_fixed_version)
        return [self.executable, *self.install_args, f"{candidate.package_name}@v{version}"]


register_handler("go", GoPackageHandler)
