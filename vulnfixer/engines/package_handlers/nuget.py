"""NuGet via the dotnet CLI."""

from __future__ import annotations

from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.engines.package_handlers.common import CommonPackageHandler
from vulnfixer.engines.package_handlers.registry import register_handler


class NugetPackageHandler(CommonPackageHandler):
    executable = "dotnet"
    install_args = ("add", "package")

    def install_command(self, candidate: FixCandidate) -> list[str]:
        return [
            self.executable,
            *self.install_args,
            candidate.package_name.strip().lower(),
            "--version",
            candidate.suggested_fixed_version,
        ]


register_handler("nuget", NugetPackageHandler)
register_handler("dotnet", NugetPackageHandler)
