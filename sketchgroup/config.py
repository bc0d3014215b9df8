"""Application configuration from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    sketchgroup_env: str = "development"
    sketchgroup_log_level: str = "info"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    # Candidate search
    search_neighborhood_count: int = 4
    search_neighborhood_radius: float = 500.0
    use_radius_neighborhood: bool = False
    search_depth: int = 1

    # Proximity grouping
    join_distance: float = 20.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
