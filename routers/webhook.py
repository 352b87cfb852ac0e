"""
Webhook entry point for form submissions.

Always answers HTTP 200; the outcome is carried in ``{status, message}``.
"""
import logging
from functools import lru_cache

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from models.config import load_config
from services.submission_handler import SubmissionHandler, SubmissionResponse
from services.sheets_service import build_spreadsheet_from_env

logger = logging.getLogger("backend.webhook")

router = APIRouter(tags=["webhook"])


@lru_cache(maxsize=1)
def get_submission_handler() -> SubmissionHandler:
    """Build the process-wide handler once from the environment."""
    config = load_config()
    logger.info(
        "Submission handler configured sheet=%s fields=%s captcha=%s notify=%s",
        config.store_name or "<first>",
        config.field_list,
        config.captcha.provider.value,
        bool(config.recipient_address),
    )
    return SubmissionHandler(config, build_spreadsheet_from_env())


async def _receive(request: Request, handler: SubmissionHandler) -> SubmissionResponse:
    body = await request.body()
    # Sheets, SMTP and CAPTCHA calls block; keep them off the event loop
    return await run_in_threadpool(handler.handle, body)


@router.post("/exec", response_model=SubmissionResponse)
async def submit(request: Request, handler: SubmissionHandler = Depends(get_submission_handler)):
    return await _receive(request, handler)


@router.post("/", response_model=SubmissionResponse, include_in_schema=False)
async def submit_root(request: Request, handler: SubmissionHandler = Depends(get_submission_handler)):
    return await _receive(request, handler)
