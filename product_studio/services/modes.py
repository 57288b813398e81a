"""
Backend capability modes

A mode decides which backend capability fills a slot and which fields of
a slot result count as usable output.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional, Type

from product_studio.config import Settings
from product_studio.schemas import BackendCallResult, GenerationRequest
from product_studio.services.openrouter import GenerativeBackend
from product_studio.services.prompt_builder import build_expansion_prompt, build_image_instruction
from product_studio.utils.images import convert_webp_to_png, make_placeholder

logger = logging.getLogger(__name__)


class BackendMode(ABC):
    """One way of turning a request into per-slot backend calls"""

    name: str = ""
    produces_prompts: bool = False

    @abstractmethod
    async def call(self, backend: GenerativeBackend, request: GenerationRequest, index: int) -> BackendCallResult:
        """Fill slot `index`; backend errors propagate to the orchestrator"""

    def prepare(self, request: GenerationRequest) -> GenerationRequest:
        """Per-request preprocessing, run once before the slots are filled"""
        return request

    def is_usable(self, result: BackendCallResult) -> bool:
        if self.produces_prompts:
            return result.has_text
        return result.has_generated_image

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class PromptExpansionMode(BackendMode):
    """Expanded photo-shoot prompts, each paired with a slot placeholder image"""

    name = "prompt"
    produces_prompts = True

    def __init__(self, word_target: int = 300):
        self.word_target = word_target

    async def call(self, backend: GenerativeBackend, request: GenerationRequest, index: int) -> BackendCallResult:
        extra_images = [request.model_photo] if request.model_photo is not None else []
        text = await backend.expand_prompt(
            request.product_image,
            build_expansion_prompt(request, word_target=self.word_target),
            extra_images=extra_images
        )
        return BackendCallResult(
            index=index,
            text=text,
            image_ref=make_placeholder(index, request.aspect_ratio)
        )


class DirectImageMode(BackendMode):
    """Images generated directly by the backend"""

    name = "image"
    produces_prompts = False

    def prepare(self, request: GenerationRequest) -> GenerationRequest:
        # The image models reject WEBP references
        update = {"product_image": convert_webp_to_png(request.product_image)}
        if request.model_photo is not None:
            update["model_reference"] = convert_webp_to_png(request.model_photo)
        return request.model_copy(update=update)

    async def call(self, backend: GenerativeBackend, request: GenerationRequest, index: int) -> BackendCallResult:
        extra_images = [request.model_photo] if request.model_photo is not None else []
        image = await backend.generate_image(
            request.product_image,
            build_image_instruction(request),
            aspect_ratio=request.aspect_ratio,
            extra_images=extra_images
        )
        return BackendCallResult(index=index, image_ref=image)


MODES: Dict[str, Type[BackendMode]] = {
    PromptExpansionMode.name: PromptExpansionMode,
    DirectImageMode.name: DirectImageMode,
}


def get_mode(name: str, settings: Optional[Settings] = None) -> BackendMode:
    """
    Resolve a backend mode by name ("prompt" or "image")

    Raises:
        ValueError: For unknown mode names
    """
    mode_cls = MODES.get(name.lower().strip())
    if mode_cls is None:
        raise ValueError(f"Unknown backend mode '{name}', expected one of: {', '.join(MODES)}")
    if mode_cls is PromptExpansionMode and settings is not None:
        return PromptExpansionMode(word_target=settings.PROMPT_WORD_TARGET)
    return mode_cls()
