from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    database_url: str = "sqlite:///./crossdeploy.db"
    redis_url: str = "redis://localhost:6379/0"
    github_webhook_secret: str = ""
    # Only pushes to this repository ("owner/repo") and branch wake the trigger
    github_repository: Optional[str] = None
    github_branch: str = "main"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    class Config:
        env_file = ".env"

@lru_cache()
def get_settings() -> Settings:
    return Settings()
