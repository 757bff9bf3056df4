"""Access policy — allow-listed extensions, blocked paths, size limits."""

from sandgate.policy.access import AccessPolicyEngine
from sandgate.policy.models import AccessPolicy, PathCheck, ProjectCheck

__all__ = [
    "AccessPolicy",
    "AccessPolicyEngine",
    "PathCheck",
    "ProjectCheck",
]
