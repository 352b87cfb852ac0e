"""Configuration model and environment loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from models.config import (
    DEFAULT_FIELDS,
    CaptchaConfig,
    CaptchaProvider,
    SubmissionConfig,
    load_config,
)

ENV_VARS = (
    "SHEET_NAME", "FORM_FIELDS", "EMAIL_SUBJECT", "FORM_HEADING", "NOTIFY_EMAIL",
    "EMAIL_FORMAT", "CAPTCHA_PROVIDER", "CAPTCHA_SECRET_KEY", "CAPTCHA_MIN_SCORE",
    "TIMESTAMP_TIMEZONE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = load_config()
    assert config.field_list == DEFAULT_FIELDS
    assert config.store_name == ""
    assert config.recipient_address == ""
    assert config.captcha.provider is CaptchaProvider.NONE
    assert config.email_format == "html"


def test_from_env(monkeypatch):
    monkeypatch.setenv("SHEET_NAME", "Leads")
    monkeypatch.setenv("FORM_FIELDS", " company , phone,, ")
    monkeypatch.setenv("NOTIFY_EMAIL", "owner@x.com")
    monkeypatch.setenv("CAPTCHA_PROVIDER", "RECAPTCHA_V3")
    monkeypatch.setenv("CAPTCHA_SECRET_KEY", "k")
    monkeypatch.setenv("CAPTCHA_MIN_SCORE", "0.7")
    monkeypatch.setenv("EMAIL_FORMAT", "TEXT")
    config = load_config()
    assert config.store_name == "Leads"
    assert config.field_list == ["company", "phone"]
    assert config.recipient_address == "owner@x.com"
    assert config.captcha.provider is CaptchaProvider.RECAPTCHA_V3
    assert config.captcha.min_score == pytest.approx(0.7)
    assert config.email_format == "text"


def test_secret_required_for_real_provider():
    with pytest.raises(ValidationError):
        CaptchaConfig(provider=CaptchaProvider.TURNSTILE)


def test_min_score_bounds():
    with pytest.raises(ValidationError):
        CaptchaConfig(provider=CaptchaProvider.RECAPTCHA_V3, secret_key="k", min_score=1.5)


def test_unknown_provider(monkeypatch):
    monkeypatch.setenv("CAPTCHA_PROVIDER", "hcaptcha")
    with pytest.raises(ValidationError):
        load_config()


def test_empty_field_list_falls_back_to_default():
    assert SubmissionConfig(field_list=[]).field_list == DEFAULT_FIELDS


def test_unknown_timezone():
    with pytest.raises(ValidationError):
        SubmissionConfig(timezone="Mars/Olympus")


def test_config_is_frozen():
    config = SubmissionConfig()
    with pytest.raises(ValidationError):
        config.store_name = "other"
