"""Fix-versions engine: pick the minimal safe upgrade per vulnerable package."""

from vulnfixer.engines.fix_versions.aggregator import build_fix_versions_map, is_direct_dependency
from vulnfixer.engines.fix_versions.models import FixCandidate, FixVersionsMap
from vulnfixer.engines.fix_versions.versions import (
    compare_versions,
    get_minimal_fix_version,
    parse_version_change_string,
)

__all__ = [
    "FixCandidate",
    "FixVersionsMap",
    "build_fix_versions_map",
    "compare_versions",
    "get_minimal_fix_version",
    "is_direct_dependency",
    "parse_version_change_string",
]
