"""
Deploy Tools
============

Helpers for one-shot deployment scripts and governance proposals:
- Migration factories wrapping a deploy function with proposal handling
- Confirmation helper for transactions and contract deployments
- Legacy governor, token-vote governor and timelock proposal flows
- Fork simulation of proposals on a local node
"""

from .context import DeployContext
from .migration import (
    Migration,
    MigrationOptions,
    deployment_with_governance_proposal,
    deployment_with_guardian_governor,
    deployment_with_proposal,
)
from .proposal import Proposal, ProposalAction

__version__ = "0.1.0"

__all__ = [
    "DeployContext",
    "Migration",
    "MigrationOptions",
    "Proposal",
    "ProposalAction",
    "deployment_with_governance_proposal",
    "deployment_with_guardian_governor",
    "deployment_with_proposal",
]
