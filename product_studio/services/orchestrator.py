"""
Fan-out orchestrator: one concurrent backend call per requested slot
"""
import asyncio
import logging
from typing import List

from product_studio.errors import BackendCallFailure
from product_studio.schemas import BackendCallResult, GenerationRequest
from product_studio.services.modes import BackendMode
from product_studio.services.openrouter import GenerativeBackend
from product_studio.utils.logging_config import log_error_with_context, log_slot_outcome

logger = logging.getLogger(__name__)


async def _run_slot(
    backend: GenerativeBackend,
    mode: BackendMode,
    request: GenerationRequest,
    index: int
) -> BackendCallResult:
    """
    Fill one slot. Failures are recorded on the result, never raised.
    """
    try:
        result = await mode.call(backend, request, index)
    except BackendCallFailure as e:
        log_slot_outcome(logger, index, request.count, "failed", f"{e.category}: {e}")
        return BackendCallResult.failure(index, str(e), e.category)
    except Exception as e:
        log_error_with_context(logger, e, "Unexpected error in backend call", index=index)
        return BackendCallResult.failure(index, f"{type(e).__name__}: {e}", BackendCallFailure.UNKNOWN)

    if result.index != index:
        result = result.model_copy(update={"index": index})

    if mode.is_usable(result):
        log_slot_outcome(logger, index, request.count, "succeeded")
    else:
        log_slot_outcome(logger, index, request.count, "returned no usable output")
    return result


async def fan_out(
    backend: GenerativeBackend,
    mode: BackendMode,
    request: GenerationRequest
) -> List[BackendCallResult]:
    """
    Issue `request.count` backend calls concurrently and wait for all of them.

    Args:
        backend: Backend client
        mode: Capability mode used for every slot
        request: Validated request

    Returns:
        One BackendCallResult per slot, in slot order
    """
    logger.info(f"Generating {request.count} slots in parallel ({mode.name} mode)")
    request = mode.prepare(request)

    tasks = [_run_slot(backend, mode, request, index) for index in range(request.count)]
    settled = await asyncio.gather(*tasks, return_exceptions=True)

    results = []
    for index, res in enumerate(settled):
        if isinstance(res, BaseException):
            # Only reachable for errors _run_slot does not catch (e.g. cancellation)
            logger.error(f"Slot {index + 1}/{request.count} aborted: {type(res).__name__}: {res}")
            res = BackendCallResult.failure(index, f"{type(res).__name__}: {res}", BackendCallFailure.UNKNOWN)
        results.append(res)
    return results
