import argparse
import asyncio
import logging
import sys
from pathlib import Path

from product_studio.config import load_settings
from product_studio.errors import GenerationError, ValidationError
from product_studio.schemas import ASPECT_RATIOS
from product_studio.services import StudioService, compose_style_instruction
from product_studio.utils.images import image_ref_from_bytes
from product_studio.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="studio",
        description="Generate marketing images or photo-shoot prompts from a product photo."
    )
    parser.add_argument("image", nargs="?", type=Path, help="Product photo (JPEG, PNG or WEBP)")
    parser.add_argument("--status", action="store_true", help="Only check backend connectivity")
    parser.add_argument("--mode", choices=["prompt", "image"], help="Backend mode (default: BACKEND_MODE)")
    parser.add_argument("--style", help="Free-text style instruction (overrides --theme/--lighting)")
    parser.add_argument("--theme", default="Studio Professional")
    parser.add_argument("--lighting", default="Studio Lighting")
    parser.add_argument("--shoot", choices=["lookbook", "b-roll"], default="b-roll")
    parser.add_argument("--gender", choices=["male", "female"])
    parser.add_argument("--model-photo", type=Path, help="Reference photo of the model (lookbook)")
    parser.add_argument("--aspect-ratio", choices=ASPECT_RATIOS)
    parser.add_argument("--count", type=int, default=6, help="Number of images (1-6)")
    parser.add_argument("--output", type=Path, default=Path("output"), help="Directory for results")
    return parser


async def run(args, service: StudioService) -> int:
    status = await service.check_status()
    if not status.connected:
        logger.error(f"Backend unavailable ({status.error_kind}): {status.error_message}")
        return 2
    logger.info("✓ Backend connected")
    if args.status:
        return 0

    model_photo = image_ref_from_bytes(args.model_photo.read_bytes()) if args.model_photo else None
    style = args.style or compose_style_instruction(
        args.theme,
        args.lighting,
        shoot=args.shoot,
        gender=args.gender,
        has_model_photo=model_photo is not None
    )

    request = {
        "productImage": image_ref_from_bytes(args.image.read_bytes()),
        "styleInstruction": style,
        "aspectRatio": args.aspect_ratio,
        "modelReference": model_photo,
        "modelGender": args.gender if args.shoot == "lookbook" else None,
        "count": args.count,
    }

    try:
        response = await service.generate_images(request)
    except ValidationError as e:
        logger.error(f"Invalid request: {e}")
        return 1
    except GenerationError as e:
        logger.error(f"Generation failed: {e}")
        return 3

    args.output.mkdir(parents=True, exist_ok=True)
    for position, image in enumerate(response.images, start=1):
        suffix = "placeholder" if image.placeholder else "image"
        path = args.output / f"{position:02d}_{suffix}.{image.extension}"
        path.write_bytes(image.to_bytes())
        logger.info(f"Saved {path}")
    for position, prompt in enumerate(response.prompts, start=1):
        path = args.output / f"{position:02d}_prompt.txt"
        path.write_text(prompt, encoding="utf-8")
        logger.info(f"Saved {path}")

    if response.failed_indices:
        logger.warning(f"Failed slots: {[index + 1 for index in response.failed_indices]}")
    logger.info(f"Done: {response.requested - len(response.failed_indices)}/{response.requested} successful")
    return 0


def main() -> int:
    settings = load_settings()
    setup_logging(settings.LOG_LEVEL)

    parser = build_parser()
    args = parser.parse_args()
    if not args.status and args.image is None:
        parser.error("an image path is required unless --status is given")

    service = StudioService.from_settings(settings, mode_name=args.mode)
    return asyncio.run(run(args, service))


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Stopped by user")
    except Exception as e:
        logger.critical(f"Unhandled exception: {e}", exc_info=True)
        sys.exit(1)
