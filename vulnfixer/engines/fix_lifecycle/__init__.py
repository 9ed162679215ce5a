"""Fix-branch lifecycle: naming, checksums and the branch-to-PR state machine."""

from vulnfixer.engines.fix_lifecycle.checksum import (
    compute_fix_checksum,
    deserialize_checksum,
    embed_checksum,
    serialize_checksum,
)
from vulnfixer.engines.fix_lifecycle.manager import FixBranch, FixBranchLifecycle, FixBranchState
from vulnfixer.engines.fix_lifecycle.naming import NamingTemplates, md5_hash
from vulnfixer.engines.fix_lifecycle.pr_body import render_pull_request_body

__all__ = [
    "FixBranch",
    "FixBranchLifecycle",
    "FixBranchState",
    "NamingTemplates",
    "compute_fix_checksum",
    "deserialize_checksum",
    "embed_checksum",
    "md5_hash",
    "render_pull_request_body",
    "serialize_checksum",
]
