"""
GenAI proxy route: prompt + inline images in, one generated image out.
"""
import logging

from fastapi import APIRouter, HTTPException

from config.presets import PRESETS, render_preset
from core.exceptions import status_code_for
from schemas.fusion import GenAIRequest, GenAIResponse
from services.google_ai_service import InlineImagePart, google_ai_service
from services.grid_service import run_blocking
from services.upload_service import check_payload
from utils.image_codec import decode_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/genai")


@router.post("", response_model=GenAIResponse)
async def generate(request: GenAIRequest):
    """
    Forward a prompt and inline images to the image model.

    When preset_id is given the preset is rendered with `variables` and the
    free-form prompt (if any) is appended.
    """
    prompt = request.prompt
    if request.preset_id:
        if request.preset_id not in PRESETS:
            raise HTTPException(status_code=400, detail=f"Unknown preset: {request.preset_id}")
        prompt = "\n".join(p for p in (render_preset(request.preset_id, request.variables), prompt) if p)

    if not prompt.strip():
        raise HTTPException(status_code=400, detail="Prompt is required")

    try:
        check_payload([image.data for image in request.images])
        for image in request.images:
            await run_blocking(decode_image, image.data)
        parts = [InlineImagePart(data=image.data, mime_type=image.mime_type) for image in request.images]
        image_b64 = await google_ai_service.generate_image(prompt, parts, label="genai_proxy")
        return GenAIResponse(image_b64=image_b64)

    except Exception as e:
        status_code = status_code_for(e)
        logger.error(f"[GenAI] Proxy request failed ({status_code}): {e}")
        raise HTTPException(status_code=status_code, detail=str(e))


@router.get("/presets")
async def list_presets():
    """Available edit presets with their default variables"""
    return {
        "presets": [
            {"id": preset_id, "label": preset["label"], "kind": preset["kind"], "defaults": preset["defaults"]}
            for preset_id, preset in PRESETS.items()
        ]
    }
