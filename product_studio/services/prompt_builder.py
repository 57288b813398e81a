"""
Prompt builder for product photoshoots
Composes style instructions and the prompt-expansion request text
"""
import logging
from typing import Optional

from product_studio.errors import ValidationError
from product_studio.schemas import GenerationRequest

logger = logging.getLogger(__name__)

SHOOT_KINDS = ("lookbook", "b-roll")


EXPANSION_TEMPLATE = """Create a detailed prompt for this product image (see image attached).

Requirements:
- Product: Based on the uploaded image (see image attached)
- Style: {style}
{requirements}
Generate a comprehensive prompt (exactly {word_target} words) that includes:
• Reference to the attached product image
• Detailed product description based on what you see in the image
• Professional photography style and lighting specifications
• Composition, camera angles, and framing details
• Background and environment that complements the product
• Color palette and mood that enhances the product appeal
{model_points}• Brand positioning and marketing message
• Technical photography parameters for professional results

IMPORTANT: Always reference "see image attached" when describing the product so the image model knows there is a visual reference. Keep the prompt at exactly {word_target} words. Return only the prompt text."""


def compose_style_instruction(
    theme: str,
    lighting: str,
    shoot: str = "lookbook",
    gender: Optional[str] = None,
    has_model_photo: bool = False
) -> str:
    """
    Compose the style instruction for a shoot

    Args:
        theme: Creative theme (e.g. "Urban Street Style")
        lighting: Lighting style (e.g. "Golden Hour")
        shoot: "lookbook" (product worn/held by a model) or "b-roll" (product in context)
        gender: Model gender for lookbook shoots
        has_model_photo: Whether a model reference photo is supplied

    Returns:
        Instruction text for GenerationRequest.style_instruction
    """
    if shoot not in SHOOT_KINDS:
        raise ValidationError("shoot", f"must be one of {', '.join(SHOOT_KINDS)}, got {shoot!r}")

    instruction = f"Generate a high-resolution, photorealistic image. Theme: {theme}. Lighting: {lighting}."
    if shoot == "lookbook":
        instruction += " This is a lookbook shoot."
        if has_model_photo:
            instruction += " The model should resemble the person in the provided model photo."
        elif gender:
            instruction += f" Feature a {gender.lower()} model."
    else:
        instruction += (
            " This is a B-roll product shot. Focus on a dynamic and appealing presentation"
            " of the product in a lifestyle context."
        )
    instruction += " Ensure the final image is polished, professional, and unique in composition."
    return instruction


def build_expansion_prompt(request: GenerationRequest, word_target: int = 300) -> str:
    """Build the prompt-expansion instruction for one request"""
    requirements = ""
    if request.aspect_ratio:
        requirements += f"- Format: {request.aspect_ratio}\n"
    if request.model_gender:
        requirements += f"- Model: {request.model_gender}\n"
    if request.model_photo is not None:
        requirements += "- Model reference: the second attached image shows the model to feature\n"
    elif request.avatar_id:
        requirements += f"- Model avatar: {request.avatar_id}\n"

    model_points = ""
    if request.model_gender:
        model_points = f"• {request.model_gender} model styling and positioning\n"

    return EXPANSION_TEMPLATE.format(
        style=request.style_instruction,
        requirements=requirements,
        word_target=word_target,
        model_points=model_points
    )


def build_image_instruction(request: GenerationRequest) -> str:
    """Build the direct image generation instruction for one request"""
    instruction = request.style_instruction
    if request.model_photo is not None:
        instruction += " Feature the person shown in the second reference image as the model."
    elif request.avatar_id:
        instruction += f" Model avatar reference: {request.avatar_id}."
    if request.model_gender:
        instruction += f" Model gender: {request.model_gender}."
    return instruction
