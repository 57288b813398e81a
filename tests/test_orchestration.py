"""
Tests for fan-out, result assembly and the generate_images entry point.
"""
import base64
from io import BytesIO

import pytest
from PIL import Image

from product_studio.errors import BackendCallFailure, EmptyResultError, GenerationError, ValidationError
from product_studio.schemas import BackendCallResult, GenerationRequest, GenerationResponse, ImageRef
from product_studio.services.assembler import assemble
from product_studio.services.modes import DirectImageMode, PromptExpansionMode, get_mode
from product_studio.services.orchestrator import fan_out
from product_studio.services.studio import StudioService, generate_images
from product_studio.utils.images import convert_webp_to_png, make_placeholder
from product_studio.utils.validators import validate_request

from tests.conftest import FakeBackend, make_image_ref

RED = make_image_ref((200, 0, 0))
GREEN = make_image_ref((0, 200, 0))
BLUE = make_image_ref((0, 0, 200))


class TestFanOut:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [1, 2, 3, 4, 5, 6])
    async def test_issues_exactly_count_calls(self, raw_request, count):
        raw_request["count"] = count
        backend = FakeBackend(outcomes=[RED] * count)

        response = await generate_images(raw_request, backend, DirectImageMode())

        assert len(backend.calls) == count
        assert len(response.images) <= count
        assert response.requested == count

    @pytest.mark.asyncio
    async def test_calls_run_concurrently_and_results_keep_slot_order(self, raw_request):
        raw_request["count"] = 3
        # Slot 0 finishes last, slot 2 first
        backend = FakeBackend(outcomes=[RED, GREEN, BLUE], delays=[0.03, 0.02, 0.01])

        response = await generate_images(raw_request, backend, DirectImageMode())

        assert backend.completion_order == [2, 1, 0]
        assert response.images == [RED, GREEN, BLUE]

    @pytest.mark.asyncio
    async def test_every_call_carries_same_payload(self, raw_request):
        raw_request["count"] = 4
        raw_request["aspectRatio"] = "16:9"
        backend = FakeBackend(outcomes=[RED] * 4)

        await generate_images(raw_request, backend, DirectImageMode())

        payloads = {(c["image"].data, c["instructions"], c["aspect_ratio"]) for c in backend.calls}
        assert len(payloads) == 1

    @pytest.mark.asyncio
    async def test_failures_recorded_per_slot(self, raw_request):
        raw_request["count"] = 3
        backend = FakeBackend(outcomes=[
            RED,
            BackendCallFailure("API error: 429 - rate limited", category=BackendCallFailure.QUOTA),
            RuntimeError("boom"),
        ])
        request = validate_request(raw_request)

        results = await fan_out(backend, DirectImageMode(), request)

        assert [r.index for r in results] == [0, 1, 2]
        assert not results[0].failed
        assert results[1].failed and results[1].error_category == "quota"
        assert results[2].failed and "boom" in results[2].error_detail

    @pytest.mark.asyncio
    async def test_model_photo_sent_as_extra_image(self, raw_request, product_image_uri):
        raw_request["count"] = 1
        raw_request["modelReference"] = product_image_uri
        backend = FakeBackend(outcomes=["prompt text"])

        await generate_images(raw_request, backend, PromptExpansionMode())

        assert len(backend.calls[0]["extra_images"]) == 1


class TestDirectImageMode:

    @pytest.mark.asyncio
    async def test_middle_failure_is_omitted(self, raw_request):
        raw_request["count"] = 3
        backend = FakeBackend(outcomes=[
            RED,
            BackendCallFailure("Network error: timed out", category=BackendCallFailure.NETWORK),
            BLUE,
        ])

        response = await generate_images(raw_request, backend, DirectImageMode())

        assert response.images == [RED, BLUE]
        assert response.prompts == []
        assert response.failed_indices == [1]
        assert not any(image.placeholder for image in response.images)

    @pytest.mark.asyncio
    async def test_text_only_responses_are_excluded(self, raw_request):
        raw_request["count"] = 2
        # generate_image returns None when the model answered with text only
        backend = FakeBackend(outcomes=[None, GREEN])

        response = await generate_images(raw_request, backend, DirectImageMode())

        assert response.images == [GREEN]
        assert response.failed_indices == [0]

    @pytest.mark.asyncio
    async def test_all_failures_raise_empty_result(self, raw_request):
        raw_request["count"] = 3
        backend = FakeBackend(outcomes=[
            BackendCallFailure("API error: 401 - unauthorized", category=BackendCallFailure.AUTH),
            None,
            RuntimeError("boom"),
        ])

        with pytest.raises(EmptyResultError) as exc_info:
            await generate_images(raw_request, backend, DirectImageMode())

        assert isinstance(exc_info.value, GenerationError)
        assert exc_info.value.requested == 3
        assert set(exc_info.value.failures) == {0, 1, 2}

    @pytest.mark.asyncio
    async def test_webp_product_converted_once_per_request(self, raw_request, monkeypatch):
        output = BytesIO()
        Image.new("RGB", (8, 8), (10, 20, 30)).save(output, format="WEBP")
        raw_request["productImage"] = "data:image/webp;base64," + base64.b64encode(output.getvalue()).decode("utf-8")
        raw_request["count"] = 3
        conversions = []

        def counting_convert(image):
            conversions.append(image.mime_type)
            return convert_webp_to_png(image)

        monkeypatch.setattr("product_studio.services.modes.convert_webp_to_png", counting_convert)
        backend = FakeBackend(outcomes=[RED, GREEN, BLUE])

        await generate_images(raw_request, backend, DirectImageMode())

        assert conversions == ["image/webp"]
        sent = [call["image"] for call in backend.calls]
        assert all(image.mime_type == "image/png" for image in sent)
        assert sent[0] is sent[1] is sent[2]


class TestPromptExpansionMode:

    @pytest.mark.asyncio
    async def test_prompts_with_placeholders(self, raw_request):
        raw_request["count"] = 2
        backend = FakeBackend(outcomes=["First prompt", "Second prompt"])

        response = await generate_images(raw_request, backend, PromptExpansionMode())

        assert response.prompts == ["First prompt", "Second prompt"]
        assert len(response.images) == 2
        assert all(image.placeholder for image in response.images)
        assert response.images[0] != response.images[1]
        assert response.mode == "prompt"

    @pytest.mark.asyncio
    async def test_placeholders_are_deterministic_per_slot(self, raw_request):
        raw_request["count"] = 2
        first = await generate_images(raw_request, FakeBackend(outcomes=["a", "b"]), PromptExpansionMode())
        second = await generate_images(raw_request, FakeBackend(outcomes=["c", "d"]), PromptExpansionMode())

        assert first.images == second.images

    @pytest.mark.asyncio
    async def test_placeholder_never_counts_as_success(self, raw_request):
        raw_request["count"] = 3
        backend = FakeBackend(outcomes=["kept", "   ", RuntimeError("boom")])

        response = await generate_images(raw_request, backend, PromptExpansionMode())

        assert response.prompts == ["kept"]
        assert response.images == [make_placeholder(0)]
        assert response.failed_indices == [1, 2]

    @pytest.mark.asyncio
    async def test_all_empty_text_raises_empty_result(self, raw_request):
        raw_request["count"] = 2
        backend = FakeBackend(outcomes=["", None])

        with pytest.raises(EmptyResultError):
            await generate_images(raw_request, backend, PromptExpansionMode())

    @pytest.mark.asyncio
    async def test_expansion_prompt_mentions_style_and_word_target(self, raw_request):
        raw_request["count"] = 1
        raw_request["aspectRatio"] = "3:4"
        backend = FakeBackend(outcomes=["text"])

        await generate_images(raw_request, backend, PromptExpansionMode(word_target=250))

        instructions = backend.calls[0]["instructions"]
        assert "Urban Street Style" in instructions
        assert "exactly 250 words" in instructions
        assert "- Format: 3:4" in instructions

    @pytest.mark.asyncio
    async def test_placeholder_uris_can_be_excluded(self, raw_request):
        raw_request["count"] = 2
        response = await generate_images(raw_request, FakeBackend(outcomes=["a", "b"]), PromptExpansionMode())

        assert len(response.image_uris()) == 2
        assert response.image_uris(include_placeholders=False) == []


class TestAssembler:

    def test_sorts_by_index(self):
        results = [
            BackendCallResult(index=2, image_ref=BLUE),
            BackendCallResult(index=0, image_ref=RED),
            BackendCallResult.failure(1, "boom"),
        ]

        response = assemble(results, DirectImageMode(), requested=3)

        assert response.images == [RED, BLUE]
        assert response.failed_indices == [1]

    def test_placeholder_in_direct_mode_is_not_an_image(self):
        results = [
            BackendCallResult(index=0, image_ref=make_placeholder(0)),
            BackendCallResult(index=1, image_ref=GREEN),
        ]

        response = assemble(results, DirectImageMode(), requested=2)

        assert response.images == [GREEN]

    def test_failed_flag_wins_over_payload(self):
        results = [BackendCallResult(index=0, text="text", failed=True, error_detail="late failure")]

        with pytest.raises(EmptyResultError) as exc_info:
            assemble(results, PromptExpansionMode(), requested=1)
        assert exc_info.value.failures == {0: "late failure"}


class TestGenerateImages:

    @pytest.mark.asyncio
    async def test_validation_error_before_any_call(self, raw_request):
        raw_request["count"] = 9
        backend = FakeBackend()

        with pytest.raises(ValidationError):
            await generate_images(raw_request, backend, DirectImageMode())
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_unchecked_prebuilt_request_rejected(self):
        request = GenerationRequest.model_construct(
            product_image=ImageRef(mime_type="text/plain", data=""),
            style_instruction="x",
            aspect_ratio=None,
            model_reference=None,
            model_gender=None,
            count=True
        )
        backend = FakeBackend(outcomes=[RED])

        with pytest.raises(ValidationError):
            await generate_images(request, backend, DirectImageMode())
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_wrapped(self, raw_request, monkeypatch):
        async def broken_fan_out(*args, **kwargs):
            raise KeyError("internal")

        monkeypatch.setattr("product_studio.services.studio.fan_out", broken_fan_out)

        with pytest.raises(GenerationError) as exc_info:
            await generate_images(raw_request, FakeBackend(), DirectImageMode())
        assert isinstance(exc_info.value.__cause__, KeyError)

    @pytest.mark.asyncio
    async def test_service_binds_backend_and_mode(self, raw_request):
        raw_request["count"] = 1
        service = StudioService(FakeBackend(outcomes=[RED]), get_mode("image"))

        response = await service.generate_images(raw_request)

        assert isinstance(response, GenerationResponse)
        assert response.image_uris()[0].startswith("data:image/png;base64,")

    def test_get_mode(self, settings):
        assert isinstance(get_mode("prompt"), PromptExpansionMode)
        assert isinstance(get_mode(" IMAGE "), DirectImageMode)
        assert get_mode("prompt", settings).word_target == settings.PROMPT_WORD_TARGET
        with pytest.raises(ValueError):
            get_mode("video")

    def test_service_from_settings(self, settings):
        service = StudioService.from_settings(settings, mode_name="image")
        assert isinstance(service.mode, DirectImageMode)
        assert service.backend.api_key == "test-key"
