"""Fix orchestrator: drive scanning, aggregation and fix branches for a repository."""

from vulnfixer.engines.fix_orchestrator.models import (
    FixFailure,
    FixRunResult,
    ProjectTarget,
    SkippedFix,
    SkipReason,
)
from vulnfixer.engines.fix_orchestrator.orchestrator import FixOrchestrator

__all__ = [
    "FixFailure",
    "FixOrchestrator",
    "FixRunResult",
    "ProjectTarget",
    "SkipReason",
    "SkippedFix",
]
