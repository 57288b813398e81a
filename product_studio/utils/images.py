"""Image helpers: mime sniffing, format conversion and placeholder synthesis"""
import base64
import logging
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageDraw, UnidentifiedImageError

from product_studio.schemas import ImageRef

logger = logging.getLogger(__name__)

PLACEHOLDER_LONG_EDGE = 120
PLACEHOLDER_DEFAULT_SIZE = (80, 120)  # 2:3 portrait when no aspect ratio is requested

# Muted studio backdrop colours, cycled by slot index
PLACEHOLDER_PALETTE = [
    (229, 222, 211),
    (201, 214, 223),
    (216, 203, 222),
    (206, 224, 207),
    (232, 212, 199),
    (214, 214, 214),
]


def detect_mime_type(image_bytes: bytes) -> str:
    """
    Detect image mime type with Pillow.

    Raises:
        ValueError: If the bytes are not a readable image
    """
    try:
        img = Image.open(BytesIO(image_bytes))
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"not a readable image: {e}")
    img_format = img.format.lower() if img.format else 'jpeg'
    return f"image/{img_format}"


def image_ref_from_bytes(image_bytes: bytes, mime_type: Optional[str] = None) -> ImageRef:
    """Wrap raw image bytes, sniffing the mime type when not given"""
    if not image_bytes:
        raise ValueError("image is empty")
    if mime_type is None:
        mime_type = detect_mime_type(image_bytes)
    return ImageRef(
        mime_type=mime_type,
        data=base64.b64encode(image_bytes).decode('utf-8')
    )


def verify_image(image_bytes: bytes) -> None:
    """Raise ValueError unless the bytes decode as an image"""
    try:
        Image.open(BytesIO(image_bytes)).verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError(f"invalid image data: {e}")


def convert_webp_to_png(image_ref: ImageRef) -> ImageRef:
    """Re-encode WEBP images as PNG; other formats pass through"""
    if image_ref.mime_type != "image/webp":
        return image_ref

    img = Image.open(BytesIO(image_ref.to_bytes()))
    if img.mode in ('RGBA', 'LA', 'P'):
        img = img.convert('RGBA')
    else:
        img = img.convert('RGB')
    output = BytesIO()
    img.save(output, format='PNG', optimize=True)
    logger.info("Converted WEBP reference image to PNG")
    return image_ref_from_bytes(output.getvalue(), mime_type="image/png")


def placeholder_size(aspect_ratio: Optional[str]) -> Tuple[int, int]:
    if not aspect_ratio:
        return PLACEHOLDER_DEFAULT_SIZE
    width_part, height_part = (int(part) for part in aspect_ratio.split(":"))
    if width_part >= height_part:
        return PLACEHOLDER_LONG_EDGE, round(PLACEHOLDER_LONG_EDGE * height_part / width_part)
    return round(PLACEHOLDER_LONG_EDGE * width_part / height_part), PLACEHOLDER_LONG_EDGE


def make_placeholder(index: int, aspect_ratio: Optional[str] = None) -> ImageRef:
    """
    Build the stand-in image for slot `index`.

    The output depends only on the index and aspect ratio, and is marked
    as a placeholder so it is never counted as a generated image.
    """
    width, height = placeholder_size(aspect_ratio)
    color = PLACEHOLDER_PALETTE[index % len(PLACEHOLDER_PALETTE)]
    img = Image.new('RGB', (width, height), color)

    # Inset frame, offset by slot so neighbouring slots differ even when colours repeat
    draw = ImageDraw.Draw(img)
    inset = 6 + (index % 4) * 2
    frame = tuple(max(channel - 30, 0) for channel in color)
    draw.rectangle([inset, inset, width - inset - 1, height - inset - 1], outline=frame, width=2)

    output = BytesIO()
    img.save(output, format='PNG')
    return ImageRef(
        mime_type="image/png",
        data=base64.b64encode(output.getvalue()).decode('utf-8'),
        placeholder=True
    )
