"""应用服务"""

from taskweave.application.services.identity_service import IdentityService
from taskweave.application.services.task_gateway import MutationGateway, would_create_cycle

__all__ = [
    "IdentityService",
    "MutationGateway",
    "would_create_cycle",
]
