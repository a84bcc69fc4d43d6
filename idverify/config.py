"""
Service configuration.

Values come from the environment (a local .env file is loaded first) and
are frozen into a Settings instance at startup.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

ENV_PREFIX = "IDVERIFY_"


@dataclass(frozen=True)
class Settings:
    max_upload_bytes: int = 5 * 1024 * 1024
    face_match_threshold: float = 0.5
    signature_match_threshold: float = 0.85
    detection_input_size: int = 416
    detection_score_threshold: float = 0.5
    provider_timeout: float = 15.0
    provider_workers: int = 4
    account_api_url: str = "http://localhost:8080"
    account_api_cookie: Optional[str] = None
    account_api_timeout: float = 10.0
    account_api_max_bytes: int = 50 * 1024 * 1024
    cors_origin_regex: str = r"http://localhost(:\d+)?"
    log_level: str = "INFO"
    log_dir: str = "logs"


def _env(name: str) -> Optional[str]:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = _env(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {value!r}")


def load_settings() -> Settings:
    """
    Build Settings from environment variables.
    """
    load_dotenv(find_dotenv(usecwd=True), override=False)
    defaults = Settings()
    return Settings(
        max_upload_bytes=_env_int("MAX_UPLOAD_BYTES", defaults.max_upload_bytes),
        face_match_threshold=_env_float("FACE_MATCH_THRESHOLD", defaults.face_match_threshold),
        signature_match_threshold=_env_float(
            "SIGNATURE_MATCH_THRESHOLD", defaults.signature_match_threshold
        ),
        detection_input_size=_env_int("DETECTION_INPUT_SIZE", defaults.detection_input_size),
        detection_score_threshold=_env_float(
            "DETECTION_SCORE_THRESHOLD", defaults.detection_score_threshold
        ),
        provider_timeout=_env_float("PROVIDER_TIMEOUT", defaults.provider_timeout),
        provider_workers=_env_int("PROVIDER_WORKERS", defaults.provider_workers),
        account_api_url=_env("ACCOUNT_API_URL") or defaults.account_api_url,
        account_api_cookie=_env("ACCOUNT_API_COOKIE"),
        account_api_timeout=_env_float("ACCOUNT_API_TIMEOUT", defaults.account_api_timeout),
        account_api_max_bytes=_env_int("ACCOUNT_API_MAX_BYTES", defaults.account_api_max_bytes),
        cors_origin_regex=_env("CORS_ORIGIN_REGEX") or defaults.cors_origin_regex,
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        log_dir=os.getenv("LOG_DIR", defaults.log_dir),
    )
