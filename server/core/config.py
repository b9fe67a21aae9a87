"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5000, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)

    # Authentication (token verification only, issuance lives elsewhere)
    auth_enabled: bool = Field(default=True)
    anonymous_user_id: str = Field(default="anonymous", max_length=64)
    jwt_secret_key: str = Field(min_length=32)
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = Field(default="HS256")
    jwt_cookie_name: str = Field(default="web3d_token")

    # Security
    cors_origins: List[str] = Field(default=["http://localhost:3000", "http://localhost:5173"])

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/web3drender.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Uploaded model files
    upload_dir: str = Field(default="./uploads")
    max_file_size: int = Field(default=1073741824, ge=1)  # 1 GB

    # Query cache TTLs (seconds)
    model_list_cache_ttl: float = Field(default=120.0, gt=0)
    project_list_cache_ttl: float = Field(default=120.0, gt=0)
    annotation_cache_ttl: float = Field(default=180.0, gt=0)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("upload_dir")
    @classmethod
    def validate_upload_dir(cls, v):
        """Ensure the upload directory exists."""
        Path(v).mkdir(parents=True, exist_ok=True)
        return v

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
