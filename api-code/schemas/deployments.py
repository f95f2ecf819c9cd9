from __future__ import annotations

from typing import List, Optional

from models import CamelModel, DeploymentRecord, DeploymentsMeta


class DeploymentsResponse(CamelModel):
    data: List[DeploymentRecord]
    meta: DeploymentsMeta


class LatestDeploymentResponse(CamelModel):
    data: Optional[DeploymentRecord] = None
    meta: DeploymentsMeta
