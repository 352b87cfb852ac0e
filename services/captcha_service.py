"""
CAPTCHA verification against the provider siteverify endpoints.
Handles reCAPTCHA v2 (checkbox), reCAPTCHA v3 (score) and Cloudflare Turnstile.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from models.config import CaptchaConfig, CaptchaProvider
from services.errors import CaptchaRejectedError, CaptchaUnavailableError, MissingTokenError

logger = logging.getLogger("backend.captcha")

RECAPTCHA_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"
TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"

VERIFY_TIMEOUT = 10.0

VERIFY_URLS = {
    CaptchaProvider.RECAPTCHA_V2: RECAPTCHA_VERIFY_URL,
    CaptchaProvider.RECAPTCHA_V3: RECAPTCHA_VERIFY_URL,
    CaptchaProvider.TURNSTILE: TURNSTILE_VERIFY_URL,
}

# Payload keys the widgets post their token under; first match wins
TOKEN_KEYS = {
    CaptchaProvider.RECAPTCHA_V2: ("g-recaptcha-response", "gCaptchaResponse"),
    CaptchaProvider.RECAPTCHA_V3: ("g-recaptcha-response", "gCaptchaResponse"),
    CaptchaProvider.TURNSTILE: ("cf-turnstile-response",),
}

REJECT_MESSAGES = {
    CaptchaProvider.RECAPTCHA_V2: "Please tick the box to verify you are not a robot.",
    CaptchaProvider.RECAPTCHA_V3: "reCAPTCHA verification failed. Please try again.",
    CaptchaProvider.TURNSTILE: "Turnstile verification failed. Please try again.",
}


def extract_token(provider: CaptchaProvider, payload: Dict[str, Any]) -> str:
    for key in TOKEN_KEYS.get(provider, ()):
        value = payload.get(key)
        if value:
            return str(value).strip()
    return ""


def missing_token_message(provider: CaptchaProvider) -> str:
    key = TOKEN_KEYS[provider][0]
    name = "Turnstile" if provider is CaptchaProvider.TURNSTILE else "reCAPTCHA"
    return f"{name} verification under key '{key}' is required."


class CaptchaVerifier:
    """Verifies a single-use CAPTCHA token. One POST per call, never retried."""

    def __init__(self, client: Optional[httpx.Client] = None):
        self._client = client

    def _post(self, url: str, data: Dict[str, str]) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, data=data, timeout=VERIFY_TIMEOUT)
        with httpx.Client(timeout=VERIFY_TIMEOUT) as client:
            return client.post(url, data=data)

    def verify(self, config: CaptchaConfig, token: Optional[str]) -> None:
        """
        Raise if the token does not pass the configured provider.

        Raises:
            MissingTokenError: token is empty
            CaptchaRejectedError: provider answered success=false or the score is too low
            CaptchaUnavailableError: network failure or a non-JSON answer
        """
        provider = config.provider
        if provider is CaptchaProvider.NONE:
            return
        if not token:
            raise MissingTokenError(missing_token_message(provider))

        url = VERIFY_URLS[provider]
        try:
            response = self._post(url, {"response": token, "secret": config.secret_key})
            response.raise_for_status()
            result = response.json()
        except httpx.HTTPError as e:
            logger.error("CAPTCHA verification request failed provider=%s: %s", provider.value, e)
            raise CaptchaUnavailableError()
        except ValueError as e:
            logger.error("CAPTCHA verification returned non-JSON provider=%s: %s", provider.value, e)
            raise CaptchaUnavailableError()
        if not isinstance(result, dict):
            logger.error("CAPTCHA verification returned unexpected body provider=%s", provider.value)
            raise CaptchaUnavailableError()

        if result.get("success") is not True:
            logger.info("CAPTCHA rejected provider=%s errors=%s", provider.value, result.get("error-codes"))
            raise CaptchaRejectedError(REJECT_MESSAGES[provider])

        if provider.score_based:
            score = result.get("score")
            if (
                config.min_score is not None
                and isinstance(score, (int, float))
                and not isinstance(score, bool)
                and score < config.min_score
            ):
                logger.info("CAPTCHA score too low score=%s min=%s", score, config.min_score)
                raise CaptchaRejectedError(REJECT_MESSAGES[provider])
