from product_studio.services.modes import BackendMode, DirectImageMode, PromptExpansionMode, get_mode
from product_studio.services.openrouter import GenerativeBackend, OpenRouterClient
from product_studio.services.prompt_builder import compose_style_instruction
from product_studio.services.status import check_status, classify_error
from product_studio.services.studio import StudioService, generate_images

__all__ = [
    "BackendMode",
    "DirectImageMode",
    "PromptExpansionMode",
    "get_mode",
    "GenerativeBackend",
    "OpenRouterClient",
    "compose_style_instruction",
    "check_status",
    "classify_error",
    "StudioService",
    "generate_images",
]
