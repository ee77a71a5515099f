"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging

from pydantic_settings import BaseSettings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class Settings(BaseSettings):
    app_name: str = "brenner-loop"
    log_level: str = "INFO"

    # Hypothesis cards
    default_confidence: float = 50.0

    # Lifecycle
    dormancy_threshold_days: int = 30

    # Confidence engine
    significance_threshold: float = 5.0

    # Evolution graph
    evolution_label_length: int = 50

    model_config = {"env_prefix": "BRENNER_"}


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Install the root log handler used by embedding applications and tests."""
    logging.basicConfig(level=level or settings.log_level, format=LOG_FORMAT)
