from .identity import (
    as_domain_list,
    canonical_repo_name,
    canonical_slug,
    env_prefix,
    host_from_url,
    normalize_host,
    normalize_slug,
    shell_quote,
)
from .job_states import AutoDeployStatus, is_valid_transition

__all__ = [
    "AutoDeployStatus",
    "as_domain_list",
    "canonical_repo_name",
    "canonical_slug",
    "env_prefix",
    "host_from_url",
    "is_valid_transition",
    "normalize_host",
    "normalize_slug",
    "shell_quote",
]
