import logging

import pytest

from idverify.config import Settings, load_settings
from idverify.logging_config import setup_logging


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # keep any developer .env out of the picture
    monkeypatch.chdir(tmp_path)
    for name in ("MAX_UPLOAD_BYTES", "FACE_MATCH_THRESHOLD", "ACCOUNT_API_URL",
                 "ACCOUNT_API_COOKIE", "PROVIDER_TIMEOUT", "PROVIDER_WORKERS"):
        monkeypatch.delenv("IDVERIFY_" + name, raising=False)


def test_defaults():
    settings = load_settings()
    assert settings.max_upload_bytes == 5 * 1024 * 1024
    assert settings.face_match_threshold == 0.5
    assert settings.detection_input_size == 416
    assert settings.detection_score_threshold == 0.5
    assert settings.account_api_cookie is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("IDVERIFY_MAX_UPLOAD_BYTES", "1024")
    monkeypatch.setenv("IDVERIFY_FACE_MATCH_THRESHOLD", "0.6")
    monkeypatch.setenv("IDVERIFY_ACCOUNT_API_URL", "http://10.0.0.1")
    monkeypatch.setenv("IDVERIFY_ACCOUNT_API_COOKIE", "PHPSESSID=x")

    settings = load_settings()

    assert settings.max_upload_bytes == 1024
    assert settings.face_match_threshold == 0.6
    assert settings.account_api_url == "http://10.0.0.1"
    assert settings.account_api_cookie == "PHPSESSID=x"


def test_invalid_number(monkeypatch):
    monkeypatch.setenv("IDVERIFY_PROVIDER_TIMEOUT", "soon")
    with pytest.raises(ValueError):
        load_settings()


def test_settings_are_frozen():
    with pytest.raises(Exception):
        Settings().max_upload_bytes = 1


@pytest.fixture
def service_logger():
    logger = logging.getLogger("idverify")
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def test_setup_logging_writes_rotating_file(tmp_path, service_logger):
    log_dir = tmp_path / "logs"
    logger = setup_logging(str(log_dir), "debug")

    assert logger.name == "idverify"
    assert logger.level == logging.DEBUG
    assert not logger.propagate
    assert len(logger.handlers) == 2

    # a second call replaces the handlers instead of stacking them
    logger = setup_logging(str(log_dir), "INFO")
    assert len(logger.handlers) == 2
    logger.info("hello")
    for handler in logger.handlers:
        handler.flush()
    assert "hello" in (log_dir / "idverify.log").read_text(encoding="utf-8")


def test_provider_workers_override(monkeypatch):
    monkeypatch.setenv("IDVERIFY_PROVIDER_WORKERS", "2")
    assert load_settings().provider_workers == 2
