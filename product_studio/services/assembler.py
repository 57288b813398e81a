"""
Result assembler: turns per-slot results into the response contract
"""
import logging
from typing import Iterable

from product_studio.errors import EmptyResultError
from product_studio.schemas import BackendCallResult, GenerationResponse
from product_studio.services.modes import BackendMode

logger = logging.getLogger(__name__)


def assemble(results: Iterable[BackendCallResult], mode: BackendMode, requested: int) -> GenerationResponse:
    """
    Build a GenerationResponse from slot results.

    Results are walked in ascending slot index, whatever order they
    completed in. Unusable slots are left out rather than padded.

    Raises:
        EmptyResultError: If no slot produced usable output
    """
    response = GenerationResponse(mode=mode.name, requested=requested)
    failures = {}

    for result in sorted(results, key=lambda r: r.index):
        if not mode.is_usable(result):
            response.failed_indices.append(result.index)
            failures[result.index] = result.error_detail or "no usable output"
            continue

        if mode.produces_prompts:
            response.prompts.append(result.text.strip())
            if result.image_ref is not None:
                response.images.append(result.image_ref)
        else:
            response.images.append(result.image_ref)

    if not response.images and not response.prompts:
        logger.error(f"All {requested} slots failed ({mode.name} mode)")
        raise EmptyResultError(requested, failures)

    usable = len(response.prompts) if mode.produces_prompts else len(response.images)
    logger.info(f"Assembled {usable}/{requested} results ({mode.name} mode)")
    return response
