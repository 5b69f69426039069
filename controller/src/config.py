from pydantic import SecretStr
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Dict, Optional

class Settings(BaseSettings):
    database_url: str = "sqlite:///./crossdeploy.db"
    redis_url: str = "redis://localhost:6379/0"
    use_redis_inbox: bool = False

    # Pipeline definition and identity of the account running the pipeline
    pipeline_file: str = "pipeline.yml"
    pipeline_account_id: str = "000000000000"

    # Artifact store
    artifact_backend: str = "memory"  # "memory" or "filesystem"
    artifact_root: str = "./.artifacts"
    workspace_root: str = "./.workspaces"

    # Build runner: "local" runs commands in a subprocess, "kubernetes" in a Job
    build_runner: str = "local"
    build_image: str = "public.ecr.aws/docker/library/node:20"

    # Kubernetes settings
    k8s_namespace: str = "crossdeploy"
    k8s_in_cluster: bool = False  # Set True when running inside K8s
    k8s_workspace_claim: Optional[str] = None  # PVC mounted at workspace_root
    job_ttl_after_finished: int = 300  # Clean up jobs after 5 min

    # Deploy settings
    deploy_timeout: int = 1800
    deploy_poll_interval: float = 5.0

    # Source polling
    poll_interval: float = 60.0
    github_api_url: str = "https://api.github.com"

    # Secret name -> value, e.g. SECRETS='{"GitHubToken": "ghp_..."}'
    secrets: Dict[str, SecretStr] = {}

    class Config:
        env_file = ".env"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
