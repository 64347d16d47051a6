"""Application configuration loaded from environment and config files."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class FormsConfig(BaseSettings):
    """Form definition loading and resolution."""

    model_config = {"env_prefix": "STEPFORM_FORMS_"}

    forms_dir: str = "config/forms"
    max_dependency_depth: int = 32


class SessionConfig(BaseSettings):
    """Persisted session configuration."""

    model_config = {"env_prefix": "STEPFORM_SESSION_"}

    storage_prefix: str = "multi-step-form"
    database_url: str | None = None


class SubmissionConfig(BaseSettings):
    """Submission transport configuration."""

    model_config = {"env_prefix": "STEPFORM_SUBMISSION_"}

    endpoint: str = "http://localhost:8080/wp-json/onea/v1/form-submission"
    timeout_seconds: int = 30
    nonce: str = ""


class Settings(BaseSettings):
    """Root application settings."""

    model_config = {"env_prefix": "STEPFORM_"}

    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    forms: FormsConfig = Field(default_factory=FormsConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    submission: SubmissionConfig = Field(default_factory=SubmissionConfig)
