"""
Fashion fusion API routes.

Two surfaces:
- stateless steps (/fusion/compose, /fusion/pose-grid, ...) taking every
  input in the request body
- session-scoped steps (/fusion/sessions/{session_id}/...) keeping uploads
  and results in an in-memory FusionSession
"""
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, File, HTTPException, UploadFile

from config.palettes import CANONICAL_9, PALETTES, get_palette_colors
from core.exceptions import status_code_for
from middleware.logging_middleware import get_logger
from schemas.fusion import (
    CellColorGridRequest,
    ComposeRequest,
    CompositeResponse,
    GarmentMaskRequest,
    GridGenerationRequest,
    GridResultResponse,
    HiResRequest,
    HiResResponse,
    LocalColorGridRequest,
    PaletteRequest,
    SessionHiResRequest,
    SessionResponse,
    UploadedImageSchema,
    UploadResponse,
)
from services import session_state
from services.fusion_service import fusion_service
from services.grid_service import run_blocking
from services.session_state import FusionSession, GenerationKind, session_store
from services.upload_service import InlineImage, base_size_for, inline_from_b64, read_upload

logger = get_logger(__name__)

router = APIRouter(prefix="/fusion")


def _http_error(action: str, e: Exception) -> HTTPException:
    status_code = status_code_for(e)
    if status_code >= 500:
        logger.error(f"[Fusion] {action} failed: {e}", exc_info=True)
    else:
        logger.warning(f"[Fusion] {action} rejected ({status_code}): {e}")
    return HTTPException(status_code=status_code, detail=str(e))


async def _inline_from_schema(image) -> InlineImage:
    return await run_blocking(inline_from_b64, image.data, image.mime_type)


def _palette_colors(colors, palette_id: str):
    if colors:
        return list(colors)[:9]
    try:
        return get_palette_colors(palette_id)
    except KeyError:
        raise HTTPException(status_code=400, detail=f"Unknown palette: {palette_id}")


def _grid_response(result) -> GridResultResponse:
    return GridResultResponse(
        image_b64=result.image,
        accepted=result.accepted,
        attempts=result.attempts,
        width=result.width,
        height=result.height,
        reason=result.reason,
    )


@router.get("/palettes")
async def list_palettes():
    """Selectable palettes plus the canonical vivid palette"""
    return {
        "palettes": [
            {"id": palette_id, "label": palette["label"], "colors": palette["colors"]}
            for palette_id, palette in PALETTES.items()
        ],
        "canonical": CANONICAL_9,
    }


@router.post("/upload", response_model=UploadResponse)
async def upload_images(person: UploadFile = File(...), item: UploadFile = File(...)):
    """Upload person + item images; returns inline data and the base size"""
    try:
        person_image = await read_upload(person)
        item_image = await read_upload(item)
        base_width, base_height = base_size_for(person_image)
        return UploadResponse(
            person=UploadedImageSchema.model_validate(person_image),
            item=UploadedImageSchema.model_validate(item_image),
            base_width=base_width,
            base_height=base_height,
        )
    except Exception as e:
        raise _http_error("upload", e)


@router.post("/compose", response_model=CompositeResponse)
async def compose(request: ComposeRequest):
    """Composite the item onto the person, normalized to the base size"""
    try:
        person = await _inline_from_schema(request.person)
        item = await _inline_from_schema(request.item)
        if request.base_width and request.base_height:
            base_width, base_height = request.base_width, request.base_height
        else:
            base_width, base_height = base_size_for(person)

        image_b64 = await fusion_service.compose(person, item, base_width, base_height)
        return CompositeResponse(image_b64=image_b64, width=base_width, height=base_height)
    except Exception as e:
        raise _http_error("compose", e)


@router.post("/pose-grid", response_model=GridResultResponse)
async def pose_grid(request: GridGenerationRequest):
    """3x3 pose variation grid of a composite"""
    try:
        item = await _inline_from_schema(request.item) if request.item else None
        result = await fusion_service.pose_grid(request.composite, request.base_width, request.base_height, item)
        return _grid_response(result)
    except Exception as e:
        raise _http_error("pose grid", e)


@router.post("/color-grid", response_model=GridResultResponse)
async def color_grid(request: GridGenerationRequest):
    """3x3 garment color variation grid of a composite"""
    colors = _palette_colors(request.colors, request.palette_id)
    try:
        item = await _inline_from_schema(request.item) if request.item else None
        result = await fusion_service.color_grid(
            request.composite, colors, request.base_width, request.base_height, item
        )
        return _grid_response(result)
    except Exception as e:
        raise _http_error("color grid", e)


@router.post("/hires-pose", response_model=HiResResponse)
async def hires_pose(request: HiResRequest):
    """Re-render one pose grid cell (index 0..8) at higher resolution"""
    try:
        result = await fusion_service.hires_pose(
            request.grid, request.composite, request.index, request.base_width, request.base_height
        )
        return HiResResponse(image_b64=result.image, index=result.index, width=result.width, height=result.height)
    except Exception as e:
        raise _http_error("hi-res pose", e)


@router.post("/cell-color-grid", response_model=CompositeResponse)
async def cell_color_grid(request: CellColorGridRequest):
    """Color grid composed cell by cell (item grid -> 9 composites -> assembled grid)"""
    try:
        person = await _inline_from_schema(request.person)
        item = await _inline_from_schema(request.item)
        image_b64 = await fusion_service.cell_composite_color_grid(
            person, item, request.base_width, request.base_height, request.colors, request.garment_mask
        )
        return CompositeResponse(image_b64=image_b64, width=request.base_width * 3, height=request.base_height * 3)
    except Exception as e:
        raise _http_error("cell color grid", e)


@router.post("/garment-mask", response_model=CompositeResponse)
async def garment_mask(request: GarmentMaskRequest):
    """Binary garment mask (white = garment) of a composite"""
    try:
        image_b64 = await fusion_service.garment_mask(request.composite, request.width, request.height)
        return CompositeResponse(image_b64=image_b64, width=request.width, height=request.height)
    except Exception as e:
        raise _http_error("garment mask", e)


@router.post("/local-color-grid", response_model=CompositeResponse)
async def local_color_grid(request: LocalColorGridRequest):
    """3x3 color grid recolored locally with a garment mask (no model calls)"""
    colors = _palette_colors(request.colors, request.palette_id)
    try:
        image_b64 = await fusion_service.local_color_grid(
            request.composite, request.mask, colors, request.base_width, request.base_height, gap=request.gap
        )
        gutter = request.gap * 4
        return CompositeResponse(
            image_b64=image_b64, width=request.base_width * 3 + gutter, height=request.base_height * 3 + gutter
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _http_error("local color grid", e)


# ---------------------------------------------------------------------------
# Session-scoped workflow
# ---------------------------------------------------------------------------


def _get_session(session_id: str) -> FusionSession:
    session = session_store.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Fusion session not found")
    return session


def _record_failure(session_id: str, generation_id: int, error: str) -> None:
    current = session_store.get(session_id)
    if current is not None:
        session_store.update(session_state.fail(current, generation_id, error))


async def _run_step(
    session_id: str,
    kind: GenerationKind,
    work: Callable[[FusionSession], Awaitable[Any]],
    on_ready: Callable[[FusionSession, int, Any], FusionSession],
    hires_index: Optional[int] = None,
) -> SessionResponse:
    """
    Run one generation step against a stored session.

    The result is applied to the session as stored when the step finishes, so
    a clear or re-upload in the meantime makes it stale and it is dropped.
    """
    session = _get_session(session_id)
    try:
        session = session_store.update(session_state.start_generation(session, kind, hires_index))
    except Exception as e:
        raise _http_error(kind.value, e)

    generation_id = session.generation_id
    try:
        result = await work(session)
    except Exception as e:
        _record_failure(session_id, generation_id, str(e))
        raise _http_error(kind.value, e)
    except BaseException:
        _record_failure(session_id, generation_id, f"{kind.value} cancelled")
        raise

    current = _get_session(session_id)
    current = session_store.update(on_ready(current, generation_id, result))
    return SessionResponse.from_session(current)


@router.post("/sessions", response_model=SessionResponse)
async def create_session():
    """Start a new fusion session"""
    return SessionResponse.from_session(session_store.create())


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return SessionResponse.from_session(_get_session(session_id))


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    if not session_store.delete(session_id):
        raise HTTPException(status_code=404, detail="Fusion session not found")
    return {"deleted": True, "session_id": session_id}


@router.post("/sessions/{session_id}/clear", response_model=SessionResponse)
async def clear_session(session_id: str):
    """Discard uploads and results; in-flight results for this session become stale"""
    session = session_store.update(session_state.clear(_get_session(session_id)))
    return SessionResponse.from_session(session)


@router.post("/sessions/{session_id}/palette", response_model=SessionResponse)
async def select_palette(session_id: str, request: PaletteRequest):
    try:
        session = session_state.select_palette(_get_session(session_id), request.palette_id)
    except Exception as e:
        raise _http_error("palette", e)
    return SessionResponse.from_session(session_store.update(session))


@router.post("/sessions/{session_id}/upload", response_model=SessionResponse)
async def upload_to_session(
    session_id: str, person: Optional[UploadFile] = File(None), item: Optional[UploadFile] = File(None)
):
    """Upload the person and/or item image into a session"""
    session = _get_session(session_id)
    if person is None and item is None:
        raise HTTPException(status_code=400, detail="Upload a person image, an item image, or both")

    try:
        if person is not None:
            session = session_state.upload_person(session, await read_upload(person))
        if item is not None:
            session = session_state.upload_item(session, await read_upload(item))
    except Exception as e:
        raise _http_error("session upload", e)

    return SessionResponse.from_session(session_store.update(session))


@router.post("/sessions/{session_id}/compose", response_model=SessionResponse)
async def compose_in_session(session_id: str):
    async def work(session: FusionSession) -> str:
        return await fusion_service.compose(session.person, session.item, session.base_width, session.base_height)

    return await _run_step(session_id, GenerationKind.COMPOSITE, work, session_state.composite_ready)


@router.post("/sessions/{session_id}/pose-grid", response_model=SessionResponse)
async def pose_grid_in_session(session_id: str):
    async def work(session: FusionSession):
        return await fusion_service.pose_grid(
            session.composite_b64, session.base_width, session.base_height, session.item
        )

    def on_ready(current: FusionSession, generation_id: int, result) -> FusionSession:
        return session_state.pose_grid_ready(current, generation_id, result.image, result.accepted)

    return await _run_step(session_id, GenerationKind.POSE_GRID, work, on_ready)


@router.post("/sessions/{session_id}/color-grid", response_model=SessionResponse)
async def color_grid_in_session(session_id: str):
    async def work(session: FusionSession):
        colors = get_palette_colors(session.palette_id)
        return await fusion_service.color_grid(
            session.composite_b64, colors, session.base_width, session.base_height, session.item
        )

    def on_ready(current: FusionSession, generation_id: int, result) -> FusionSession:
        return session_state.color_grid_ready(current, generation_id, result.image, result.accepted)

    return await _run_step(session_id, GenerationKind.COLOR_GRID, work, on_ready)


@router.post("/sessions/{session_id}/hires-pose", response_model=SessionResponse)
async def hires_pose_in_session(session_id: str, request: SessionHiResRequest):
    async def work(session: FusionSession):
        return await fusion_service.hires_pose(
            session.pose_grid_b64, session.composite_b64, request.index, session.base_width, session.base_height
        )

    def on_ready(current: FusionSession, generation_id: int, result) -> FusionSession:
        return session_state.hires_ready(current, generation_id, result.index, result.image, result.width, result.height)

    return await _run_step(session_id, GenerationKind.HIRES, work, on_ready, hires_index=request.index)
