"""
Backend status prober
"""
import logging
import re
from typing import List, Tuple

from product_studio.errors import ProbeFailure
from product_studio.schemas import ApiStatus
from product_studio.services.openrouter import GenerativeBackend

logger = logging.getLogger(__name__)


# Ordered (pattern, error kind) rules; the first matching rule wins
ERROR_RULES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"api key is not configured|missing api key|no api key|api key (?:is )?required|"
                r"openrouter_api_key", re.IGNORECASE), "missing-key"),
    (re.compile(r"api key not valid|invalid api key|invalid_api_key|unauthori[sz]ed|permission denied|"
                r"\b401\b|\b403\b|no auth credentials|user not found", re.IGNORECASE), "invalid-key"),
    (re.compile(r"quota|rate limit|rate-limit|too many requests|resource exhausted|resource_exhausted|"
                r"insufficient credits|\b429\b|\b402\b", re.IGNORECASE), "quota-exceeded"),
    (re.compile(r"network|timed out|timeout|connection|fetch failed|dns|unreachable|"
                r"econnrefused|enotfound|econnreset", re.IGNORECASE), "network"),
]


def classify_error(message: str) -> str:
    """Map an error message to an ApiStatus error kind"""
    for pattern, kind in ERROR_RULES:
        if pattern.search(message):
            return kind
    return "unknown"


async def check_status(backend: GenerativeBackend) -> ApiStatus:
    """
    Probe the backend once and report connectivity. Never raises.
    """
    try:
        result = await backend.probe()
        if not isinstance(result, dict) or not result.get("choices"):
            raise ProbeFailure("Probe returned no choices")
        logger.info("Backend probe succeeded")
        return ApiStatus(connected=True)
    except Exception as e:
        message = str(e) or type(e).__name__
        kind = classify_error(message)
        logger.warning(f"Backend probe failed ({kind}): {message}")
        return ApiStatus(connected=False, error_message=message, error_kind=kind)
