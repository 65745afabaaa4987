"""Process configuration read from the environment (and a .env file)."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from triage_bot.github.client import DEFAULT_API_URL, DEFAULT_TIMEOUT

DEFAULT_BASE_BRANCH = "main"
DEFAULT_COMMITTER_NAME = "AIDA"
DEFAULT_COMMITTER_EMAIL = "github-actions@github.com"
DEFAULT_MAX_CONCURRENT_WRITES = 4
MAX_CONCURRENT_WRITES_LIMIT = 16

# Safe keys allowed in config output (no secrets)
SAFE_CONFIG_KEYS = frozenset({
    "api_url", "base_branch", "committer_name", "committer_email",
    "max_concurrent_writes", "http_timeout",
})


class ConfigError(Exception):
    """Raised when an environment value cannot be used."""


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    github_token: str | None = None
    api_url: str = DEFAULT_API_URL
    base_branch: str = DEFAULT_BASE_BRANCH
    committer_name: str = DEFAULT_COMMITTER_NAME
    committer_email: str = DEFAULT_COMMITTER_EMAIL
    max_concurrent_writes: int = Field(default=DEFAULT_MAX_CONCURRENT_WRITES, ge=1)
    http_timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)

    def safe_dict(self) -> dict:
        """Settings without credentials, for printing."""
        return {k: v for k, v in self.model_dump().items() if k in SAFE_CONFIG_KEYS}


def load_settings(env: dict[str, str] | None = None, dotenv: bool = True) -> Settings:
    """Build Settings from ``env`` (default: ``os.environ`` after ``load_dotenv``).

    Raises:
        ConfigError: If a numeric value is malformed or out of range.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = dict(os.environ)

    api_url = env.get("GITHUB_API_URL") or DEFAULT_API_URL
    enterprise_hostname = env.get("ENTERPRISE_HOSTNAME")
    if enterprise_hostname:
        api_url = f"https://{enterprise_hostname}/api/v3"

    raw_workers = env.get("MAX_CONCURRENT_WRITES") or str(DEFAULT_MAX_CONCURRENT_WRITES)
    raw_timeout = env.get("HTTP_TIMEOUT") or str(DEFAULT_TIMEOUT)
    try:
        workers = int(raw_workers)
        timeout = float(raw_timeout)
    except ValueError as exc:
        raise ConfigError(f"Invalid numeric setting: {exc}") from exc

    try:
        return Settings(
            github_token=env.get("GITHUB_TOKEN") or None,
            api_url=api_url,
            base_branch=env.get("BASE_BRANCH") or DEFAULT_BASE_BRANCH,
            committer_name=env.get("COMMITTER_NAME") or DEFAULT_COMMITTER_NAME,
            committer_email=env.get("COMMITTER_EMAIL") or DEFAULT_COMMITTER_EMAIL,
            max_concurrent_writes=min(workers, MAX_CONCURRENT_WRITES_LIMIT),
            http_timeout=timeout,
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid setting: {exc}") from exc
