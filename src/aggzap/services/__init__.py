"""Services built on top of the protocol contracts."""

from aggzap.services.deployment import ProtocolDeployment, configure_route, deploy_protocol
from aggzap.services.reconciliation import SolvencyReport, check_pool_solvency

__all__ = [
    "ProtocolDeployment",
    "configure_route",
    "deploy_protocol",
    "SolvencyReport",
    "check_pool_solvency",
]
