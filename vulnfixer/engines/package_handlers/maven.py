"""Maven handler: versions-maven-plugin with property indirection."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from vulnfixer.engines.fix_versions.models import FixCandidate
from vulnfixer.engines.package_handlers.common import run_package_manager_command
from vulnfixer.engines.package_handlers.registry import HandlerContext, register_handler
from vulnfixer.exceptions import UnsupportedFixError, UnsupportedReason

log = structlog.get_logger("vulnfixer.engine")

_NS = "{http://maven.apache.org/POM/4.0.0}"

_PROP_RE = re.compile(r"\$\{([^}]+)\}")

_SKIPPED_DIRS = frozenset({"target", "node_modules", ".git"})


@dataclass
class MavenDependencyInfo:
    """Where a ``groupId:artifactId`` is declared and which properties carry its version."""

    properties: set[str] = field(default_factory=set)
    pom_paths: set[Path] = field(default_factory=set)


def _text(element: ET.Element | None) -> str | None:
    if element is None:
        return None
    return element.text.strip() if element.text else None


def _iter_poms(project_dir: Path) -> list[Path]:
    return [
        pom
        for pom in sorted(project_dir.glob("**/pom.xml"))
        if pom.is_file() and not _SKIPPED_DIRS.intersection(pom.relative_to(project_dir).parts)
    ]


def build_dependency_property_index(project_dir: Path) -> dict[str, MavenDependencyInfo]:
    """Map ``groupId:artifactId`` to the poms declaring it and its version properties.

    Covers ``<dependencies>``, ``<dependencyManagement>`` and plugin
    dependencies of every pom under *project_dir*; unparsable poms are skipped.
    """
    index: dict[str, MavenDependencyInfo] = {}
    for pom in _iter_poms(project_dir):
        try:
            root = ET.parse(pom).getroot()
        except ET.ParseError:
            log.warning("handler.maven_pom_unparsable", path=str(pom))
            continue
        for ns in (_NS, ""):
            for dep_el in root.iter(f"{ns}dependency"):
                group_id = _text(dep_el.find(f"{ns}groupId"))
                artifact_id = _text(dep_el.find(f"{ns}artifactId"))
                if not group_id or not artifact_id:
                    continue
                info = index.setdefault(f"{group_id}:{artifact_id}", MavenDependencyInfo())
                info.pom_paths.add(pom)
                version = _text(dep_el.find(f"{ns}version"))
                if version:
                    info.properties.update(m.group(1) for m in _PROP_RE.finditer(version))
    return index


class MavenPackageHandler:
    """Upgrade a declared dependency, then any property that holds its version.

    The property index is built on first use and shared by every package of
    the project.
    """

    def __init__(self, technology: str, context: HandlerContext) -> None:
        self.technology = technology
        self.context = context
        self._index: dict[str, MavenDependencyInfo] | None = None

    @property
    def dependency_index(self) -> dict[str, MavenDependencyInfo]:
        if self._index is None:
            self._index = build_dependency_property_index(self.context.project_dir)
            log.debug(
                "handler.maven_index_built",
                project=str(self.context.project_dir),
                dependencies=len(self._index),
            )
        return self._index

    def update_dependency(self, candidate: FixCandidate) -> None:
        info = self.dependency_index.get(candidate.package_name)
        if info is None:
            # not declared in any pom: only reachable transitively
            raise UnsupportedFixError(
                candidate.package_name,
                candidate.suggested_fixed_version,
                UnsupportedReason.INDIRECT_DEPENDENCY,
                technology=self.technology,
            )
        version = candidate.suggested_fixed_version
        run_package_manager_command(
            [
                "mvn",
                "-B",
                "versions:use-dep-version",
                f"-Dincludes={candidate.package_name}",
                f"-DdepVersion={version}",
                "-DgenerateBackupPoms=false",
            ]
        )
        for prop in sorted(info.properties):
            run_package_manager_command(
                [
                    "mvn",
                    "-B",
                    "versions:set-property",
                    f"-Dproperty={prop}",
                    f"-DnewVersion={version}",
                    "-DgenerateBackupPoms=false",
                ]
            )


register_handler("maven", MavenPackageHandler)
