import asyncio
import base64
from io import BytesIO
from typing import List, Optional, Sequence

import pytest
from PIL import Image

from product_studio.config import Settings
from product_studio.schemas import ImageRef


def make_png(color=(200, 30, 30), size=(8, 8)) -> bytes:
    output = BytesIO()
    Image.new("RGB", size, color).save(output, format="PNG")
    return output.getvalue()


def make_image_ref(color=(200, 30, 30)) -> ImageRef:
    return ImageRef(mime_type="image/png", data=base64.b64encode(make_png(color)).decode("utf-8"))


class FakeBackend:
    """
    Scripted backend. Calls are numbered in the order they start, which for
    the orchestrator is slot order; `outcomes[n]` decides what call n returns.
    Exceptions are raised, anything else is returned.
    """

    def __init__(self, outcomes: Sequence = (), delays: Optional[Sequence[float]] = None, probe_outcome=None):
        self.outcomes = list(outcomes)
        self.delays = list(delays) if delays else []
        self.probe_outcome = probe_outcome if probe_outcome is not None else {"choices": [{"message": {"content": "ok"}}]}
        self.calls: List[dict] = []
        self.completion_order: List[int] = []
        self.probe_calls = 0

    async def _next(self, kind: str, **details):
        call_number = len(self.calls)
        self.calls.append({"kind": kind, **details})
        if call_number < len(self.delays):
            await asyncio.sleep(self.delays[call_number])
        self.completion_order.append(call_number)
        outcome = self.outcomes[call_number] if call_number < len(self.outcomes) else None
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def expand_prompt(self, image, instructions, extra_images=()):
        return await self._next("expand_prompt", image=image, instructions=instructions,
                                extra_images=list(extra_images))

    async def generate_image(self, image, instructions, aspect_ratio=None, extra_images=()):
        return await self._next("generate_image", image=image, instructions=instructions,
                                aspect_ratio=aspect_ratio, extra_images=list(extra_images))

    async def probe(self):
        self.probe_calls += 1
        if isinstance(self.probe_outcome, BaseException):
            raise self.probe_outcome
        return self.probe_outcome


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def product_image_uri(png_bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("utf-8")


@pytest.fixture
def raw_request(product_image_uri) -> dict:
    return {
        "productImage": product_image_uri,
        "styleInstruction": "Theme: Urban Street Style. Lighting: Golden Hour.",
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        OPENROUTER_API_KEY="test-key",
        PROMPT_MODEL="test/prompt-model",
        IMAGE_MODEL="test/image-model",
    )
