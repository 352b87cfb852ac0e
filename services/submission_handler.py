"""
Submission pipeline: parse -> CAPTCHA -> resolve sheet -> reconcile header
-> append row -> notify.

The handler never raises; every outcome is a ``SubmissionResponse``.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from models.config import CaptchaProvider, SubmissionConfig
from services.captcha_service import CaptchaVerifier, extract_token
from services.errors import (
    InvalidJsonError,
    NotificationError,
    StoreNotFoundError,
    SubmissionError,
)
from services.notification_service import NotificationDispatcher
from services.sheet_log_service import append_submission_row, reconcile_header
from services.sheets_service import Sheet, Spreadsheet

logger = logging.getLogger("backend.submissions")

SUCCESS_MESSAGE = "Submission logged successfully"
STORE_FAILURE_MESSAGE = "Failed to log submission"


class SubmissionResponse(BaseModel):
    status: str
    message: str

    @classmethod
    def ok(cls, message: str = SUCCESS_MESSAGE) -> "SubmissionResponse":
        return cls(status="OK", message=message)

    @classmethod
    def error(cls, message: str) -> "SubmissionResponse":
        return cls(status="error", message=message)


def _reject_constant(name: str):
    # NaN and Infinity are not JSON and cannot be written to the sheet
    raise InvalidJsonError()


def parse_payload(raw_body: Union[bytes, str, None]) -> Dict[str, Any]:
    if isinstance(raw_body, (bytes, bytearray)):
        try:
            raw_body = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise InvalidJsonError()
    try:
        data = json.loads(raw_body or "", parse_constant=_reject_constant)
    except ValueError:
        raise InvalidJsonError()
    if not isinstance(data, dict):
        raise InvalidJsonError()
    return data


class SubmissionHandler:
    def __init__(
        self,
        config: SubmissionConfig,
        spreadsheet: Spreadsheet,
        captcha: Optional[CaptchaVerifier] = None,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.spreadsheet = spreadsheet
        self.captcha = captcha or CaptchaVerifier()
        self.notifier = notifier or NotificationDispatcher(email_format=config.email_format)
        self.clock = clock or self._now

    def _now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(ZoneInfo(self.config.timezone))

    def _resolve_sheet(self) -> Sheet:
        name = self.config.store_name
        sheet = self.spreadsheet.get_sheet(name)
        if sheet is None:
            raise StoreNotFoundError("Invalid sheet name" if name else "No spreadsheet found.")
        return sheet

    def _verify_captcha(self, payload: Dict[str, Any]) -> None:
        captcha = self.config.captcha
        if captcha.provider is CaptchaProvider.NONE:
            return
        self.captcha.verify(captcha, extract_token(captcha.provider, payload))

    def _notify(self, payload: Dict[str, Any]) -> None:
        cfg = self.config
        if not cfg.recipient_address:
            return
        try:
            self.notifier.dispatch(
                cfg.recipient_address,
                cfg.notification_subject,
                cfg.notification_heading,
                cfg.field_list,
                payload,
            )
        except NotificationError as e:
            # Row is already written; delivery failure does not change the response
            logger.warning("Notification failed to=%s: %s", cfg.recipient_address, e.message)

    def handle(self, raw_body: Union[bytes, str, None]) -> SubmissionResponse:
        try:
            payload = parse_payload(raw_body)
            self._verify_captcha(payload)
            sheet = self._resolve_sheet()
        except SubmissionError as e:
            logger.info("Submission rejected reason=%s", e.reason)
            return SubmissionResponse.error(e.message)
        except Exception:
            logger.exception("Unexpected error before logging submission")
            return SubmissionResponse.error(SubmissionError.default_message)

        fields = self.config.field_list
        try:
            reconcile_header(sheet, fields)
            append_submission_row(sheet, fields, payload, self.clock())
        except Exception:
            logger.exception("Failed to log submission sheet=%s", sheet.title)
            return SubmissionResponse.error(STORE_FAILURE_MESSAGE)

        logger.info("Submission logged sheet=%s", sheet.title)
        self._notify(payload)
        return SubmissionResponse.ok()
