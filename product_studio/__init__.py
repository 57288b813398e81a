"""Product Studio: AI marketing images and photo-shoot prompts from a product photo"""
from product_studio.errors import (
    BackendCallFailure,
    EmptyResultError,
    GenerationError,
    StudioError,
    ValidationError,
)
from product_studio.schemas import ApiStatus, GenerationRequest, GenerationResponse, ImageRef

__version__ = "0.1.0"
