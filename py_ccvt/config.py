"""Configuration management."""

import os
from pathlib import Path

from dotenv import dotenv_values
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env for local runs only where values are missing from the environment
BASE_DIR = Path(__file__).resolve().parent.parent
env_file = BASE_DIR / ".env"

if env_file.exists():
    file_env = dotenv_values(env_file)
    missing_keys = {k: v for k, v in file_env.items() if k not in os.environ and v is not None}
    for k, v in missing_keys.items():
        os.environ[k] = v


class Settings(BaseSettings):
    """Application settings pulled from CCVT_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CCVT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Logging format (json or console)")

    # Balancing Configuration
    max_sweeps: int = Field(default=100, ge=1, description="Sweep cap before reporting non-convergence")
    priority_sweeps: int = Field(default=3, ge=0, description="Leading sweeps ordered by bounding radius")
    search_depth: int = Field(default=5, ge=1, description="Ring depth of exhaustive partner searches")
    ring_depth: int = Field(default=8, ge=1, description="Ring depth of ring-by-ring partner searches")
    empty_ring_limit: int = Field(default=2, ge=1, description="Empty rings that end a ring-by-ring search")

    # Geometry Configuration
    coincidence_offset: float = Field(
        default=0.1, gt=0, description="Offset used to re-resolve coincident points"
    )

    # Weighted Voronoi Configuration
    lloyd_iterations: int = Field(default=100, ge=0, description="Weighted Lloyd relaxation iterations")
    random_seed: str = Field(default="default", description="Seed for site subsampling")


# Instantiate singleton settings object
settings = Settings()
