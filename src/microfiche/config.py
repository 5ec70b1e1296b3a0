"""Configuration module for Microfiche."""

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from microfiche import __version__
from microfiche.models.schema import FicheSchema

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default log directory
_USER_ENV = Path.home() / ".microfiche" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _split_csv_env(name: str) -> List[str]:
    """Read a comma-separated environment variable into a list of lowercase words."""
    raw = os.getenv(name, "")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


class MicroficheConfig(BaseModel):
    """Configuration for the knowledge store and its front ends."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("MICROFICHE_BASE_DIR", "."))
    )
    # Default data file opened on startup (CSV, or .db/.sqlite for SQLite)
    data_file: Path = Field(
        default_factory=lambda: Path(os.getenv("MICROFICHE_DATA_FILE", "microfiche.csv"))
    )
    # Hierarchy depth: "concept" (4 levels) or "key_detail" (5 levels)
    schema_kind: FicheSchema = Field(
        default_factory=lambda: FicheSchema(
            os.getenv("MICROFICHE_SCHEMA", FicheSchema.CONCEPT.value).lower()
        )
    )
    # Analytics and pagination
    page_size: int = Field(
        default_factory=lambda: int(os.getenv("MICROFICHE_PAGE_SIZE", "10"))
    )
    top_terms: int = Field(
        default_factory=lambda: int(os.getenv("MICROFICHE_TOP_TERMS", "12"))
    )
    shared_categories_shown: int = Field(
        default_factory=lambda: int(os.getenv("MICROFICHE_SHARED_CATEGORIES", "3"))
    )
    min_token_length: int = Field(
        default_factory=lambda: int(os.getenv("MICROFICHE_MIN_TOKEN_LENGTH", "3"))
    )
    extra_stopwords: List[str] = Field(
        default_factory=lambda: _split_csv_env("MICROFICHE_EXTRA_STOPWORDS")
    )
    # Logging configuration
    log_level: str = Field(
        default_factory=lambda: os.getenv("MICROFICHE_LOG_LEVEL", "INFO").upper()
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("MICROFICHE_LOG_DIR"))
            if os.getenv("MICROFICHE_LOG_DIR")
            else None
        )
    )
    # MCP server configuration
    server_name: str = Field(default=os.getenv("MICROFICHE_SERVER_NAME", "microfiche"))
    server_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "MicroficheConfig":
        """Reject limits that would make pagination or ranking meaningless."""
        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")
        if self.top_terms < 1:
            raise ValueError("top_terms must be >= 1")
        if self.shared_categories_shown < 0:
            raise ValueError("shared_categories_shown must be >= 0")
        if self.min_token_length < 1:
            raise ValueError("min_token_length must be >= 1")
        if self.min_token_length == 1:
            logger.warning(
                "min_token_length=1 keeps single-character tokens; "
                "term statistics will be noisy"
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_data_file(self) -> Path:
        """Get the absolute path of the default data file."""
        return self.get_absolute_path(self.data_file)


# Create a global config instance
config = MicroficheConfig()
