"""Logging and Sentry setup for hosts embedding the session controller."""

from __future__ import annotations

import logging
import os
import subprocess

import sentry_sdk
from sentry_sdk.integrations.httpx import HttpxIntegration

from .config import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


def get_git_sha() -> str:
    """Get short git SHA for release tracking."""
    env_sha = os.getenv("GIT_SHA")
    if env_sha:
        return env_sha
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            stderr=subprocess.DEVNULL,
            text=True,
        ).strip()
    except Exception:
        return "unknown"


def init_sentry(settings: Settings) -> bool:
    if not settings.sentry_dsn:
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=get_git_sha(),
        integrations=[HttpxIntegration()],
        send_default_pii=False,
        traces_sample_rate=0.1,
    )
    logger.info("Sentry initialized for environment: %s", settings.environment)
    return True
