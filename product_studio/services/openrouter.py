"""
OpenRouter backend client (prompt expansion, image generation, probe)
"""
import aiohttp
import asyncio
import base64
import logging
from typing import Dict, List, Optional, Protocol, Sequence

from product_studio.config import Settings
from product_studio.errors import BackendCallFailure
from product_studio.schemas import ImageRef
from product_studio.utils.images import convert_webp_to_png, detect_mime_type, verify_image

logger = logging.getLogger(__name__)


PROBE_PROMPT = "This is a test prompt to check the API status."

IMAGE_SYSTEM_PROMPT = (
    "You are an advanced AI photographer. "
    "Generate a photorealistic product image based on the user's prompt and the provided reference image. "
    "Maintain the product's identity and key features strictly. "
    "Follow the requested style, lighting, and composition."
)

AUTH_STATUSES = {401, 403}
QUOTA_STATUSES = {402, 429}
NETWORK_STATUSES = {408, 502, 503, 504}


class GenerativeBackend(Protocol):
    """Capabilities the generation flow needs from a model backend"""

    async def expand_prompt(
        self, image: ImageRef, instructions: str, extra_images: Sequence[ImageRef] = ()
    ) -> str:
        ...

    async def generate_image(
        self,
        image: ImageRef,
        instructions: str,
        aspect_ratio: Optional[str] = None,
        extra_images: Sequence[ImageRef] = ()
    ) -> Optional[ImageRef]:
        ...

    async def probe(self) -> Dict:
        ...


def categorize_status(status: int) -> str:
    if status in AUTH_STATUSES:
        return BackendCallFailure.AUTH
    if status in QUOTA_STATUSES:
        return BackendCallFailure.QUOTA
    if status in NETWORK_STATUSES:
        return BackendCallFailure.NETWORK
    return BackendCallFailure.UNKNOWN


class OpenRouterClient:
    """Calls OpenRouter chat completions for text and image output"""

    def __init__(self, settings: Settings):
        self.api_key = settings.OPENROUTER_API_KEY
        self.base_url = settings.OPENROUTER_BASE_URL
        self.prompt_model = settings.PROMPT_MODEL
        self.image_model = settings.IMAGE_MODEL
        self.request_timeout = settings.REQUEST_TIMEOUT
        self.image_request_timeout = settings.IMAGE_REQUEST_TIMEOUT
        self.probe_timeout = settings.PROBE_TIMEOUT
        self.http_referer = settings.HTTP_REFERER
        self.app_title = settings.APP_TITLE

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.http_referer,
            "X-Title": self.app_title
        }

    @staticmethod
    def _image_part(image: ImageRef) -> Dict:
        return {
            "type": "image_url",
            "image_url": {
                "url": image.to_data_uri()
            }
        }

    async def _post(self, payload: Dict, timeout: int) -> Dict:
        """
        Send one chat completion request.

        Raises:
            BackendCallFailure: Categorized as auth, quota, network or unknown
        """
        if not self.api_key or not self.api_key.strip():
            raise BackendCallFailure(
                "OpenRouter API key is not configured (set OPENROUTER_API_KEY)",
                category=BackendCallFailure.AUTH
            )

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.base_url,
                    json=payload,
                    headers=self._headers(),
                    timeout=aiohttp.ClientTimeout(total=timeout)
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"OpenRouter API error: {response.status} - {error_text[:500]}")
                        raise BackendCallFailure(
                            f"API error: {response.status} - {error_text[:500]}",
                            category=categorize_status(response.status),
                            status=response.status
                        )
                    result = await response.json()
        except (aiohttp.ContentTypeError, ValueError) as e:
            raise BackendCallFailure(f"Unexpected response body: {e}")
        except asyncio.TimeoutError:
            raise BackendCallFailure(
                f"Network error: request timed out after {timeout}s",
                category=BackendCallFailure.NETWORK
            )
        except aiohttp.ClientError as e:
            raise BackendCallFailure(
                f"Network error: {type(e).__name__}: {e}",
                category=BackendCallFailure.NETWORK
            )

        # OpenRouter may report upstream failures in a 200 body
        error = result.get("error") if isinstance(result, dict) else None
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            category = categorize_status(code) if isinstance(code, int) else BackendCallFailure.UNKNOWN
            raise BackendCallFailure(f"API error: {code} - {message}", category=category, status=code)

        return result

    @staticmethod
    def _first_message(result: Dict) -> Dict:
        choices = result.get('choices', [])
        if not choices:
            raise BackendCallFailure("No choices in API response")
        return choices[0].get('message') or {}

    @staticmethod
    def _message_text(message: Dict) -> str:
        content = message.get('content') or ''
        if isinstance(content, list):
            # Some providers return content as typed parts
            content = "".join(
                part.get('text', '') for part in content
                if isinstance(part, dict) and part.get('type') == 'text'
            )
        return content.strip()

    async def expand_prompt(
        self, image: ImageRef, instructions: str, extra_images: Sequence[ImageRef] = ()
    ) -> str:
        """
        Ask the prompt model for descriptive text about the image

        Args:
            image: Product image
            instructions: Full instruction text
            extra_images: Additional reference images (e.g. model photo)

        Returns:
            Generated text, empty if the model returned none
        """
        content: List[Dict] = [self._image_part(image)]
        content.extend(self._image_part(extra) for extra in extra_images)
        content.append({"type": "text", "text": instructions})

        payload = {
            "model": self.prompt_model,
            "messages": [
                {
                    "role": "user",
                    "content": content
                }
            ],
            "temperature": 0.7,
            "max_tokens": 1200
        }

        logger.info(f"Sending prompt expansion request to {self.prompt_model}")
        result = await self._post(payload, timeout=self.request_timeout)
        return self._message_text(self._first_message(result))

    async def generate_image(
        self,
        image: ImageRef,
        instructions: str,
        aspect_ratio: Optional[str] = None,
        extra_images: Sequence[ImageRef] = ()
    ) -> Optional[ImageRef]:
        """
        Ask the image model for a generated image

        Args:
            image: Product reference image
            instructions: Style instructions
            aspect_ratio: Target aspect ratio (e.g. "1:1")
            extra_images: Additional reference images (e.g. model photo)

        Returns:
            Generated image, or None if the model answered with text only
        """
        image = convert_webp_to_png(image)

        content: List[Dict] = [
            {
                "type": "text",
                "text": f"Generate an image of this product based on this description: {instructions} "
                        f"Keep the product look consistent with the reference. "
                        f"Maintain high quality and professional composition."
            },
            self._image_part(image)
        ]
        content.extend(self._image_part(extra) for extra in extra_images)

        payload = {
            "model": self.image_model,
            "modalities": ["text", "image"],  # Required for image generation
            "messages": [
                {
                    "role": "system",
                    "content": IMAGE_SYSTEM_PROMPT
                },
                {
                    "role": "user",
                    "content": content
                }
            ]
        }
        if aspect_ratio:
            payload["image_config"] = {"aspect_ratio": aspect_ratio}

        logger.info(f"Sending generation request to {self.image_model} (aspect_ratio: {aspect_ratio})")
        result = await self._post(payload, timeout=self.image_request_timeout)
        message = self._first_message(result)

        images = message.get('images') or []
        if not images:
            text = self._message_text(message)
            logger.warning(f"No images in response. Content: {text[:200]}")
            return None

        return await self._extract_image(images[0])

    async def _extract_image(self, image_data) -> ImageRef:
        """Decode the first image entry of a response (data URL, URL or raw base64)"""
        # Handle dict format
        if isinstance(image_data, dict):
            image_url = (image_data.get('image_url') or
                         image_data.get('url') or
                         image_data.get('data'))
            if isinstance(image_url, dict):
                image_url = image_url.get('url') or image_url.get('data')
            if not image_url:
                raise BackendCallFailure(f"Unexpected image entry format: {list(image_data.keys())}")
            image_data = image_url

        if not isinstance(image_data, str):
            raise BackendCallFailure(f"Unexpected image data type: {type(image_data).__name__}")

        if image_data.startswith('data:'):
            try:
                image_ref = ImageRef.from_data_uri(image_data)
            except ValueError as e:
                raise BackendCallFailure(f"Failed to decode image: {e}")
            image_bytes = image_ref.to_bytes()
        elif image_data.startswith('http'):
            logger.info(f"Downloading image from URL: {image_data[:50]}...")
            image_bytes = await self._download(image_data)
            image_ref = None
        else:
            # Assume it's raw base64 without prefix
            try:
                image_bytes = base64.b64decode(image_data, validate=True)
            except ValueError as e:
                raise BackendCallFailure(f"Failed to decode image: {e}")
            image_ref = None

        try:
            verify_image(image_bytes)
            if image_ref is None:
                image_ref = ImageRef(
                    mime_type=detect_mime_type(image_bytes),
                    data=base64.b64encode(image_bytes).decode('utf-8')
                )
        except ValueError as e:
            raise BackendCallFailure(f"Backend returned an unreadable image: {e}")

        return image_ref

    async def _download(self, url: str) -> bytes:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.request_timeout)
                ) as img_response:
                    if img_response.status != 200:
                        raise BackendCallFailure(
                            f"Failed to download image from URL: {img_response.status}",
                            status=img_response.status
                        )
                    return await img_response.read()
        except asyncio.TimeoutError:
            raise BackendCallFailure("Network error: image download timed out", category=BackendCallFailure.NETWORK)
        except aiohttp.ClientError as e:
            raise BackendCallFailure(f"Network error: {e}", category=BackendCallFailure.NETWORK)

    async def probe(self) -> Dict:
        """Send the fixed probe prompt and return the raw response"""
        payload = {
            "model": self.prompt_model,
            "messages": [
                {
                    "role": "user",
                    "content": PROBE_PROMPT
                }
            ],
            "max_tokens": 10
        }
        return await self._post(payload, timeout=self.probe_timeout)
