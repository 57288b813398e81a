from typing import Any, Mapping, Optional, Union
import logging
import re

from pydantic import ValidationError as PydanticValidationError

from product_studio.errors import ValidationError
from product_studio.schemas import (
    ASPECT_RATIOS,
    DEFAULT_IMAGE_COUNT,
    MAX_IMAGE_COUNT,
    MIN_IMAGE_COUNT,
    MODEL_GENDERS,
    GenerationRequest,
    ImageRef,
)
from product_studio.utils.images import image_ref_from_bytes

logger = logging.getLogger(__name__)

MAX_STYLE_LENGTH = 2000
MAX_IMAGE_SIZE = 20 * 1024 * 1024

# Accepted spellings for each request field, camelCase first
FIELD_ALIASES = {
    "productImage": ("productImage", "product_image"),
    "styleInstruction": ("styleInstruction", "style_instruction", "prompt"),
    "aspectRatio": ("aspectRatio", "aspect_ratio"),
    "modelReference": ("modelReference", "model_reference"),
    "modelGender": ("modelGender", "model_gender"),
    "count": ("count", "numImages"),
}


def sanitize_text(text: str, max_length: int = 1000) -> str:
    """
    Sanitize user input text

    Args:
        text: Text to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove potential HTML/script tags (basic sanitization)
    text = re.sub(r'<[^>]+>', '', text)

    # Remove leading/trailing whitespace
    text = text.strip()

    # Truncate if too long
    if len(text) > max_length:
        text = text[:max_length]

    return text


def validate_image(value: Any, field: str) -> ImageRef:
    """
    Validate an image given as ImageRef, data URI string or raw bytes

    Args:
        value: Image in one of the accepted forms
        field: Request field name used in error messages

    Returns:
        Normalized ImageRef
    """
    if isinstance(value, ImageRef):
        image = value
    elif isinstance(value, (bytes, bytearray)):
        if len(value) > MAX_IMAGE_SIZE:
            max_mb = MAX_IMAGE_SIZE / (1024 * 1024)
            raise ValidationError(field, f"image is too large, maximum size is {max_mb:.0f}MB")
        try:
            image = image_ref_from_bytes(bytes(value))
        except ValueError as e:
            raise ValidationError(field, str(e))
    elif isinstance(value, str):
        if not value.strip():
            raise ValidationError(field, "image is empty")
        try:
            image = ImageRef.from_data_uri(value)
        except ValueError as e:
            raise ValidationError(field, str(e))
    else:
        raise ValidationError(field, f"unsupported image type {type(value).__name__}")

    if image.placeholder:
        raise ValidationError(field, "placeholder images cannot be used as input")
    if not image.mime_type.startswith("image/"):
        raise ValidationError(field, f"unrecognized image mime type '{image.mime_type}'")
    if not image.data:
        raise ValidationError(field, "image is empty")
    return image


def validate_count(value: Any) -> int:
    """Validate requested image count; out-of-range values are rejected, never clamped"""
    if value is None:
        return DEFAULT_IMAGE_COUNT
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("count", f"must be an integer, got {type(value).__name__}")
    if not MIN_IMAGE_COUNT <= value <= MAX_IMAGE_COUNT:
        raise ValidationError(
            "count", f"must be between {MIN_IMAGE_COUNT} and {MAX_IMAGE_COUNT}, got {value}"
        )
    return value


def validate_choice(value: Any, field: str, choices: tuple) -> Optional[str]:
    """Validate an optional enumerated value without substituting defaults"""
    if value is None:
        return None
    if value not in choices:
        raise ValidationError(field, f"must be one of {', '.join(choices)}, got {value!r}")
    return value


def validate_model_reference(value: Any) -> Optional[Union[ImageRef, str]]:
    """Model reference is either a photo of the model or a symbolic avatar id"""
    if value is None:
        return None
    if isinstance(value, str) and not value.strip().startswith("data:"):
        if not value.strip():
            raise ValidationError("modelReference", "avatar id is empty")
        return value.strip()
    return validate_image(value, "modelReference")


def _to_request_field(name: str) -> str:
    """snake_case model field name to its camelCase request field"""
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    # None under one spelling does not hide a value under the next
    for key in FIELD_ALIASES[field]:
        if raw.get(key) is not None:
            return raw[key]
    return None


def _request_fields(request: GenerationRequest) -> dict:
    # model_construct() and model_copy() skip model validation
    return {
        "productImage": request.product_image,
        "styleInstruction": request.style_instruction,
        "aspectRatio": request.aspect_ratio,
        "modelReference": request.model_reference,
        "modelGender": request.model_gender,
        "count": request.count,
    }


def validate_request(raw: Union[Mapping[str, Any], GenerationRequest]) -> GenerationRequest:
    """
    Validate and normalize a raw generation request

    Args:
        raw: Request mapping (camelCase or snake_case keys) or a GenerationRequest,
            which is checked the same way as a mapping

    Returns:
        Normalized GenerationRequest

    Raises:
        ValidationError: Naming the first offending field
    """
    if isinstance(raw, GenerationRequest):
        raw = _request_fields(raw)
    if not isinstance(raw, Mapping):
        raise ValidationError("request", f"expected a mapping, got {type(raw).__name__}")

    product_image = _pick(raw, "productImage")
    if product_image is None:
        raise ValidationError("productImage", "is required")
    product_image = validate_image(product_image, "productImage")

    style = _pick(raw, "styleInstruction")
    if not isinstance(style, str):
        raise ValidationError("styleInstruction", "is required and must be text")
    style = sanitize_text(style, max_length=MAX_STYLE_LENGTH)
    if not style:
        raise ValidationError("styleInstruction", "must not be empty")

    aspect_ratio = validate_choice(_pick(raw, "aspectRatio"), "aspectRatio", ASPECT_RATIOS)
    model_gender = validate_choice(_pick(raw, "modelGender"), "modelGender", MODEL_GENDERS)
    model_reference = validate_model_reference(_pick(raw, "modelReference"))
    count = validate_count(_pick(raw, "count"))

    try:
        request = GenerationRequest(
            product_image=product_image,
            style_instruction=style,
            aspect_ratio=aspect_ratio,
            model_reference=model_reference,
            model_gender=model_gender,
            count=count
        )
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else "request"
        field = _to_request_field(field)
        raise ValidationError(field, error.get("msg", "invalid value"))

    logger.debug(
        f"Validated request | count: {request.count} | aspect_ratio: {request.aspect_ratio} "
        f"| gender: {request.model_gender} | style: {style[:50]}"
    )
    return request
