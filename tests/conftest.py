"""Shared fixtures for the submission webhook tests."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, List
from urllib.parse import parse_qs

import httpx
import pytest

from models.config import CaptchaConfig, SubmissionConfig
from services.captcha_service import CaptchaVerifier
from services.notification_service import NotificationDispatcher
from services.sheets_service import MemorySheet, MemorySpreadsheet
from services.submission_handler import SubmissionHandler

FIXED_NOW = datetime(2026, 10, 18, 15, 4, 5)


class FakeMailer:
    """Records every send instead of talking to SMTP."""

    def __init__(self, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail

    def __call__(self, to_email, subject, body, html=True, reply_to=None):
        if self.fail:
            raise RuntimeError("Failed to send email via SMTP")
        self.sent.append(
            {"to": to_email, "subject": subject, "body": body, "html": html, "reply_to": reply_to}
        )


class CaptchaServer:
    """httpx MockTransport endpoint answering siteverify requests."""

    def __init__(self, answer: Any = None, status_code: int = 200, raw: str | None = None, error: Exception | None = None):
        self.answer = answer if answer is not None else {"success": True}
        self.status_code = status_code
        self.raw = raw
        self.error = error
        self.requests: List[Dict[str, Any]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.requests.append({"url": str(request.url), "form": form})
        if self.error is not None:
            raise self.error
        if self.raw is not None:
            return httpx.Response(self.status_code, text=self.raw)
        return httpx.Response(self.status_code, json=self.answer)

    def verifier(self) -> CaptchaVerifier:
        return CaptchaVerifier(client=httpx.Client(transport=httpx.MockTransport(self)))


@pytest.fixture()
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture()
def captcha_server() -> CaptchaServer:
    return CaptchaServer()


@pytest.fixture()
def sheet() -> MemorySheet:
    return MemorySheet("Sheet1")


@pytest.fixture()
def spreadsheet(sheet: MemorySheet) -> MemorySpreadsheet:
    return MemorySpreadsheet([sheet, MemorySheet("Leads")])


@pytest.fixture()
def make_handler(spreadsheet, mailer, captcha_server) -> Callable[..., SubmissionHandler]:
    def _make(**overrides) -> SubmissionHandler:
        captcha = overrides.pop("captcha", None)
        config = SubmissionConfig(captcha=captcha or CaptchaConfig(), **overrides)
        return SubmissionHandler(
            config,
            spreadsheet,
            captcha=captcha_server.verifier(),
            notifier=NotificationDispatcher(transport=mailer, email_format=config.email_format),
            clock=lambda: FIXED_NOW,
        )

    return _make


def body(data: Any) -> bytes:
    return json.dumps(data).encode("utf-8")
