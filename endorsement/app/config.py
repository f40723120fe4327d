"""
Centralized configuration for the endorsement service.

Settings are parsed once from the environment and validated at startup.
The signing secret has no default; a process started without it refuses
to boot.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

SensitiveEnv = Annotated[
    SecretStr,
    Field(
        min_length=16,
        description="Sensitive credential, redacted from logs",
    ),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.

    The same secret keys session tokens and identity signatures embedded
    into certificates. Rotating it invalidates both.
    """

    # ---------------------------------------------------------------------
    # Secrets
    # ---------------------------------------------------------------------

    signing_secret: SensitiveEnv

    # ---------------------------------------------------------------------
    # Session tokens
    # ---------------------------------------------------------------------

    app_url: Annotated[
        str,
        Field(
            min_length=1,
            description="Public base URL used for magic links and token issuer",
        ),
    ] = "http://localhost:3000"

    token_expiry_days: Annotated[
        int,
        Field(ge=1, le=90, description="Lifetime of claimant/endorser tokens"),
    ] = 7

    environment: Literal["development", "production"] = "development"

    # ---------------------------------------------------------------------
    # Rendering
    # ---------------------------------------------------------------------

    template_dir: Path = DEFAULT_TEMPLATE_DIR
    lualatex_binary: str = "lualatex"

    render_timeout_seconds: Annotated[
        float,
        Field(gt=0, le=300),
    ] = 60.0

    # ---------------------------------------------------------------------
    # Verification uploads
    # ---------------------------------------------------------------------

    max_pdf_size_mb: Annotated[
        int,
        Field(ge=1, le=100),
    ] = 10

    # ---------------------------------------------------------------------
    # Webhooks and storage
    # ---------------------------------------------------------------------

    webhook_max_attempts: Annotated[
        int,
        Field(ge=1, le=10),
    ] = 5

    aws_region: str = "us-east-1"
    artifact_dir: Path = Path(".artifacts")

    model_config = SettingsConfigDict(
        env_prefix="ENDORSE_",
        env_file=".env",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    @property
    def max_pdf_size_bytes(self) -> int:
        return self.max_pdf_size_mb * 1024 * 1024

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """
    Cached accessor for Settings.

    Ensures environment variables are parsed once per process lifecycle.
    """
    return Settings()
