"""End-to-end tests against the real fal.ai API.

Run with ``pytest --e2e``; requires ``FAL_KEY``. These tests spend credits.
"""

import asyncio

import pytest

from flux_kontext import (
    FalStorage,
    FluxKontextConfig,
    FluxKontextService,
    FluxOperation,
    GenerationRequest,
)


@pytest.fixture
def service():
    return FluxKontextService(FluxKontextConfig.from_env())


@pytest.mark.asyncio
async def test_text_to_image_schnell(service):
    updates = []

    result = await service.text_to_image_schnell(
        GenerationRequest(prompt="a small red cube on a white table", aspect_ratio="1:1"),
        on_queue_update=updates.append,
    )

    assert len(result.images) == 1
    assert result.images[0].url.startswith("https://")
    assert result.request_id is not None


@pytest.mark.asyncio
async def test_edit_image_pro_with_uploaded_image(service):
    source = await service.text_to_image_schnell(
        GenerationRequest(prompt="a plain wooden chair", aspect_ratio="1:1")
    )

    result = await service.edit_image_pro(
        GenerationRequest(
            prompt="paint the chair bright blue",
            image_url=source.images[0].url,
            output_format="png",
        )
    )

    assert len(result.images) >= 1


@pytest.mark.asyncio
async def test_fal_storage_upload_bytes():
    # Smallest valid PNG: 1x1 transparent pixel
    png = bytes.fromhex(
        "89504e470d0a1a0a0000000d49484452000000010000000108060000001f15c489"
        "0000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
    )

    url = await FalStorage(FluxKontextConfig.from_env()).upload(
        {"content": png, "content_type": "image/png"}
    )

    assert url.startswith("https://")


@pytest.mark.asyncio
async def test_queue_round_trip(service):
    operation = FluxOperation.TEXT_TO_IMAGE_SCHNELL
    request_id = await service.submit_to_queue(
        operation, GenerationRequest(prompt="a green apple")
    )

    for _ in range(60):
        status = await service.check_queue_status(operation, request_id)
        if status.status == "completed":
            break
        await asyncio.sleep(2)
    else:
        pytest.fail("Queued request did not complete in time")

    result = await service.get_queue_result(operation, request_id)
    assert len(result.images) == 1
