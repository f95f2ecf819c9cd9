from .deployments import DeploymentsResponse, LatestDeploymentResponse
from .logs import RequestLogsResponse
from .oauth import GitHubReposMeta, GitHubReposResponse, OAuthConnectionsResponse
from .projects import ProjectsMeta, ProjectsResponse, ProjectSummary
from .webhooks import AutoDeployJobResponse, AutoDeployJobsMeta, AutoDeployJobsResponse

__all__ = [
    "AutoDeployJobResponse",
    "AutoDeployJobsMeta",
    "AutoDeployJobsResponse",
    "DeploymentsResponse",
    "GitHubReposMeta",
    "GitHubReposResponse",
    "LatestDeploymentResponse",
    "OAuthConnectionsResponse",
    "ProjectSummary",
    "ProjectsMeta",
    "ProjectsResponse",
    "RequestLogsResponse",
]
