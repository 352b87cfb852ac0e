"""
Deployment configuration for the submission webhook.

Built once at startup from the environment and passed into the handler;
the models are frozen so a request can never mutate them.
"""
import os
from enum import Enum
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_FIELDS = ["name", "email", "message"]


class CaptchaProvider(str, Enum):
    NONE = "none"
    RECAPTCHA_V2 = "recaptcha_v2"
    RECAPTCHA_V3 = "recaptcha_v3"
    TURNSTILE = "turnstile"

    @property
    def score_based(self) -> bool:
        return self is CaptchaProvider.RECAPTCHA_V3


class CaptchaConfig(BaseModel):
    """CAPTCHA provider selection plus its secret (and score threshold for v3)"""
    model_config = ConfigDict(frozen=True)

    provider: CaptchaProvider = CaptchaProvider.NONE
    secret_key: str = ""
    min_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def require_secret(self):
        if self.provider is not CaptchaProvider.NONE and not self.secret_key:
            raise ValueError(f"secret_key is required for CAPTCHA provider '{self.provider.value}'")
        return self


class SubmissionConfig(BaseModel):
    """Process-wide settings read by every request"""
    model_config = ConfigDict(frozen=True)

    store_name: str = ""
    notification_subject: str = "New form submission"
    notification_heading: str = "Form submission"
    recipient_address: str = ""
    field_list: List[str] = Field(default_factory=lambda: list(DEFAULT_FIELDS))
    captcha: CaptchaConfig = Field(default_factory=CaptchaConfig)
    email_format: str = "html"
    timezone: str = "UTC"

    @field_validator("field_list", mode="before")
    def normalize_fields(cls, v):
        if v is None:
            return list(DEFAULT_FIELDS)
        if isinstance(v, str):
            v = v.split(",")
        cleaned = [str(f).strip() for f in v if str(f or "").strip()]
        return cleaned or list(DEFAULT_FIELDS)

    @field_validator("email_format")
    def validate_email_format(cls, v):
        v = (v or "html").strip().lower()
        if v not in ("html", "text"):
            raise ValueError("email_format must be 'html' or 'text'")
        return v

    @field_validator("timezone")
    def validate_timezone(cls, v):
        v = (v or "UTC").strip() or "UTC"
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("store_name", "recipient_address")
    def strip_value(cls, v):
        return (v or "").strip()


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name) or default).strip()


def load_config() -> SubmissionConfig:
    """Build the config from environment variables (raises ValidationError when invalid)."""
    raw_score = _env("CAPTCHA_MIN_SCORE")
    captcha = CaptchaConfig(
        provider=(_env("CAPTCHA_PROVIDER", "none").lower() or "none"),
        secret_key=_env("CAPTCHA_SECRET_KEY"),
        min_score=raw_score or None,
    )
    return SubmissionConfig(
        store_name=_env("SHEET_NAME"),
        notification_subject=_env("EMAIL_SUBJECT", "New form submission"),
        notification_heading=_env("FORM_HEADING", "Form submission"),
        recipient_address=_env("NOTIFY_EMAIL"),
        field_list=_env("FORM_FIELDS") or None,
        captcha=captcha,
        email_format=_env("EMAIL_FORMAT", "html"),
        timezone=_env("TIMESTAMP_TIMEZONE", "UTC"),
    )
