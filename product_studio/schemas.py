"""
Request, result and status models for the generation flow
"""
import base64
import binascii
import re
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

AspectRatio = Literal["1:1", "4:3", "16:9", "3:4", "9:16"]
ModelGender = Literal["male", "female"]
ErrorKind = Literal["missing-key", "invalid-key", "quota-exceeded", "network", "unknown"]

ASPECT_RATIOS = ("1:1", "4:3", "16:9", "3:4", "9:16")
MODEL_GENDERS = ("male", "female")

MIN_IMAGE_COUNT = 1
MAX_IMAGE_COUNT = 6
DEFAULT_IMAGE_COUNT = 6

# data:<mime>;base64,<payload>
DATA_URI_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


class ImageRef(BaseModel):
    """Binary image carried as mime type + base64 payload"""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    mime_type: str = Field(alias="mimeType")
    data: str
    # Reserved marker for synthesized placeholders; never a generated image
    placeholder: bool = False

    @classmethod
    def from_data_uri(cls, uri: str) -> "ImageRef":
        """
        Parse a data URI.

        Raises:
            ValueError: If the URI lacks a mime type or a base64 payload
        """
        match = DATA_URI_PATTERN.match(uri.strip())
        if not match:
            raise ValueError("expected 'data:<mimetype>;base64,<encoded_data>'")

        payload = match.group("data").strip()
        if not payload:
            raise ValueError("data URI has an empty payload")

        try:
            base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("data URI payload is not valid base64")

        return cls(mime_type=match.group("mime").lower(), data=payload)

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    @property
    def extension(self) -> str:
        subtype = self.mime_type.split("/", 1)[-1]
        return "jpg" if subtype == "jpeg" else subtype


def _check_input_image(image: ImageRef) -> ImageRef:
    if image.placeholder:
        raise ValueError("placeholder images cannot be used as input")
    if not image.mime_type.startswith("image/"):
        raise ValueError(f"unrecognized image mime type '{image.mime_type}'")
    if not image.data:
        raise ValueError("image is empty")
    return image


class GenerationRequest(BaseModel):
    """Validated generation request"""

    model_config = ConfigDict(populate_by_name=True, frozen=True, protected_namespaces=())

    product_image: ImageRef = Field(alias="productImage")
    style_instruction: str = Field(alias="styleInstruction", min_length=1)
    aspect_ratio: Optional[AspectRatio] = Field(default=None, alias="aspectRatio")
    # Either a reference photo of the model or a symbolic avatar id
    model_reference: Optional[Union[ImageRef, str]] = Field(default=None, alias="modelReference")
    model_gender: Optional[ModelGender] = Field(default=None, alias="modelGender")
    # strict: booleans and numeric strings are not counts
    count: int = Field(default=DEFAULT_IMAGE_COUNT, ge=MIN_IMAGE_COUNT, le=MAX_IMAGE_COUNT, strict=True)

    @field_validator("product_image")
    @classmethod
    def check_product_image(cls, value: ImageRef) -> ImageRef:
        return _check_input_image(value)

    @field_validator("model_reference")
    @classmethod
    def check_model_reference(cls, value):
        if isinstance(value, ImageRef):
            return _check_input_image(value)
        if isinstance(value, str) and not value.strip():
            raise ValueError("avatar id is empty")
        return value

    @field_validator("style_instruction")
    @classmethod
    def check_style_instruction(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def model_photo(self) -> Optional[ImageRef]:
        if isinstance(self.model_reference, ImageRef):
            return self.model_reference
        return None

    @property
    def avatar_id(self) -> Optional[str]:
        if isinstance(self.model_reference, str):
            return self.model_reference
        return None


class BackendCallResult(BaseModel):
    """Outcome of one fan-out call, keyed by its slot index"""

    model_config = ConfigDict(populate_by_name=True)

    index: int
    text: Optional[str] = None
    image_ref: Optional[ImageRef] = Field(default=None, alias="imageRef")
    failed: bool = False
    error_detail: Optional[str] = Field(default=None, alias="errorDetail")
    error_category: Optional[str] = Field(default=None, alias="errorCategory")

    @classmethod
    def failure(cls, index: int, detail: str, category: Optional[str] = None) -> "BackendCallResult":
        return cls(index=index, failed=True, error_detail=detail, error_category=category)

    @property
    def has_text(self) -> bool:
        return not self.failed and bool(self.text and self.text.strip())

    @property
    def has_generated_image(self) -> bool:
        return not self.failed and self.image_ref is not None and not self.image_ref.placeholder


class GenerationResponse(BaseModel):
    """Assembled output of one generation request"""

    model_config = ConfigDict(populate_by_name=True)

    images: List[ImageRef] = Field(default_factory=list)
    prompts: List[str] = Field(default_factory=list)
    mode: str
    requested: int
    failed_indices: List[int] = Field(default_factory=list, alias="failedIndices")

    def image_uris(self, include_placeholders: bool = True) -> List[str]:
        """
        Images as data URIs. A URI does not carry the placeholder marker, so
        callers that need to tell them apart check `images[i].placeholder`
        or pass include_placeholders=False.
        """
        return [
            image.to_data_uri() for image in self.images
            if include_placeholders or not image.placeholder
        ]


class ApiStatus(BaseModel):
    """Result of one backend reachability probe"""

    model_config = ConfigDict(populate_by_name=True)

    connected: bool
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    error_kind: Optional[ErrorKind] = Field(default=None, alias="errorKind")
