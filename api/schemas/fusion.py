"""
Pydantic schemas for the GenAI proxy and the fusion workflow endpoints.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.config import settings
from services.session_state import FusionSession

MAX_EDGE = settings.max_long_edge


class InlineImageSchema(BaseModel):
    """Image sent inline to the model."""

    data: str = Field(..., description="Base64 image data (data URL prefix allowed)")
    mime_type: str = "image/png"


class GenAIRequest(BaseModel):
    prompt: str = ""
    images: List[InlineImageSchema] = []
    preset_id: Optional[str] = Field(None, description="Render a preset instead of / before the prompt")
    variables: Dict[str, str] = {}


class GenAIResponse(BaseModel):
    image_b64: str


class UploadedImageSchema(BaseModel):
    mime_type: str
    data_b64: str
    width: int
    height: int
    size_bytes: int
    filename: Optional[str] = None

    class Config:
        from_attributes = True


class UploadResponse(BaseModel):
    person: UploadedImageSchema
    item: UploadedImageSchema
    base_width: int
    base_height: int


class ComposeRequest(BaseModel):
    person: InlineImageSchema
    item: InlineImageSchema
    base_width: Optional[int] = Field(
        None, gt=0, le=MAX_EDGE, description="Defaults to the person size clamped to max_long_edge"
    )
    base_height: Optional[int] = Field(None, gt=0, le=MAX_EDGE)


class CompositeResponse(BaseModel):
    image_b64: str
    width: int
    height: int


class GridGenerationRequest(BaseModel):
    composite: str
    base_width: int = Field(..., gt=0, le=MAX_EDGE)
    base_height: int = Field(..., gt=0, le=MAX_EDGE)
    item: Optional[InlineImageSchema] = None
    colors: Optional[List[str]] = None
    palette_id: str = "classic9"


class GridResultResponse(BaseModel):
    image_b64: str
    accepted: bool
    attempts: int
    width: int
    height: int
    reason: str = ""


class HiResRequest(BaseModel):
    grid: str
    composite: str
    index: int
    base_width: int = Field(..., gt=0, le=MAX_EDGE)
    base_height: int = Field(..., gt=0, le=MAX_EDGE)


class HiResResponse(BaseModel):
    image_b64: str
    index: int
    width: int
    height: int


class CellColorGridRequest(BaseModel):
    person: InlineImageSchema
    item: InlineImageSchema
    base_width: int = Field(..., gt=0, le=MAX_EDGE)
    base_height: int = Field(..., gt=0, le=MAX_EDGE)
    colors: Optional[List[str]] = None
    garment_mask: Optional[str] = Field(
        None, description="Base64 garment mask; when given each cell is checked for drift outside the garment"
    )


class LocalColorGridRequest(BaseModel):
    """Mask-based color grid of a composite (no model calls)."""

    composite: str
    mask: Optional[str] = Field(None, description="Base64 binary garment mask (white = garment)")
    base_width: int = Field(..., gt=0, le=MAX_EDGE)
    base_height: int = Field(..., gt=0, le=MAX_EDGE)
    colors: Optional[List[str]] = None
    palette_id: str = "classic9"
    gap: int = Field(0, ge=0, le=64)


class GarmentMaskRequest(BaseModel):
    composite: str
    width: int = Field(..., gt=0, le=MAX_EDGE)
    height: int = Field(..., gt=0, le=MAX_EDGE)


class PaletteRequest(BaseModel):
    palette_id: str


class SessionHiResRequest(BaseModel):
    index: int


class SessionResponse(BaseModel):
    """Client view of a fusion session (uploads are summarized, not echoed)."""

    session_id: str
    state: str
    has_person: bool
    has_item: bool
    base_width: int
    base_height: int
    palette_id: str
    composite_b64: Optional[str] = None
    pose_grid_b64: Optional[str] = None
    pose_grid_accepted: bool = False
    color_grid_b64: Optional[str] = None
    color_grid_accepted: bool = False
    hires_b64: Optional[str] = None
    hires_index: Optional[int] = None
    hires_width: int = 0
    hires_height: int = 0
    error: str = ""
    generation_id: int = 0

    @classmethod
    def from_session(cls, session: FusionSession) -> "SessionResponse":
        return cls(
            session_id=session.session_id,
            state=session.state.value,
            has_person=session.person is not None,
            has_item=session.item is not None,
            base_width=session.base_width,
            base_height=session.base_height,
            palette_id=session.palette_id,
            composite_b64=session.composite_b64,
            pose_grid_b64=session.pose_grid_b64,
            pose_grid_accepted=session.pose_grid_accepted,
            color_grid_b64=session.color_grid_b64,
            color_grid_accepted=session.color_grid_accepted,
            hires_b64=session.hires_b64,
            hires_index=session.hires_index,
            hires_width=session.hires_width,
            hires_height=session.hires_height,
            error=session.error,
            generation_id=session.generation_id,
        )
