"""
Product Studio service: request validation, fan-out and assembly
"""
import logging
from typing import Any, Mapping, Optional, Union

from product_studio.config import Settings
from product_studio.errors import GenerationError, ValidationError
from product_studio.schemas import ApiStatus, GenerationRequest, GenerationResponse
from product_studio.services.assembler import assemble
from product_studio.services.modes import BackendMode, get_mode
from product_studio.services.openrouter import GenerativeBackend, OpenRouterClient
from product_studio.services.orchestrator import fan_out
from product_studio.services.status import check_status
from product_studio.utils.validators import validate_request

logger = logging.getLogger(__name__)


async def generate_images(
    request: Union[Mapping[str, Any], GenerationRequest],
    backend: GenerativeBackend,
    mode: BackendMode
) -> GenerationResponse:
    """
    Generate images or photo-shoot prompts for a product photo

    Args:
        request: Raw request mapping or validated GenerationRequest
        backend: Backend client
        mode: Capability mode (prompt expansion or direct image)

    Returns:
        GenerationResponse with successful slots in request order

    Raises:
        ValidationError: Malformed request
        EmptyResultError: Every slot failed
        GenerationError: Unexpected internal failure
    """
    validated = validate_request(request)

    try:
        results = await fan_out(backend, mode, validated)
        return assemble(results, mode, requested=validated.count)
    except (GenerationError, ValidationError):
        raise
    except Exception as e:
        logger.error(f"Critical error in generate_images: {e}", exc_info=True)
        raise GenerationError(f"Failed to generate images: {e}") from e


class StudioService:
    """Binds a backend client and a mode for callers"""

    def __init__(self, backend: GenerativeBackend, mode: BackendMode):
        self.backend = backend
        self.mode = mode

    @classmethod
    def from_settings(cls, settings: Settings, mode_name: Optional[str] = None) -> "StudioService":
        backend = OpenRouterClient(settings)
        mode = get_mode(mode_name or settings.BACKEND_MODE, settings)
        logger.info(f"Studio service configured: {mode.name} mode, prompt model {settings.PROMPT_MODEL}, "
                    f"image model {settings.IMAGE_MODEL}")
        return cls(backend, mode)

    async def generate_images(self, request: Union[Mapping[str, Any], GenerationRequest]) -> GenerationResponse:
        return await generate_images(request, self.backend, self.mode)

    async def check_status(self) -> ApiStatus:
        return await check_status(self.backend)
