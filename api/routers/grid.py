"""
Grid API routes: slice, assemble, exact-size resize and layout validation.

Pure image operations, no model calls.
"""

from fastapi import APIRouter, HTTPException

from config.palettes import get_palette_colors
from core.config import settings
from core.exceptions import GeometryMismatchError, status_code_for
from middleware.logging_middleware import get_logger
from schemas.grid import (
    AssembleRequest,
    CellSchema,
    GeometryReportSchema,
    ImageResponse,
    LocalVariantsRequest,
    LocalVariantsResponse,
    ResizeRequest,
    SliceRequest,
    SliceResponse,
    ValidateRequest,
)
from services.grid_service import grid_service
from services.local_recolor_service import GutterOptions, local_recolor_service

logger = get_logger(__name__)

router = APIRouter(prefix="/grid")


def _http_error(action: str, e: Exception) -> HTTPException:
    status_code = status_code_for(e)
    if status_code >= 500:
        logger.error(f"[Grid] {action} failed: {e}", exc_info=True)
    else:
        logger.warning(f"[Grid] {action} rejected ({status_code}): {e}")
    return HTTPException(status_code=status_code, detail=str(e))


@router.post("/slice", response_model=SliceResponse)
async def slice_grid(request: SliceRequest):
    """Split a grid image into row-major cells"""
    try:
        cells = await grid_service.slice_grid(request.image, request.spec.to_spec())
        return SliceResponse(cells=[CellSchema.model_validate(cell) for cell in cells], count=len(cells))
    except Exception as e:
        raise _http_error("slice", e)


@router.post("/assemble", response_model=ImageResponse)
async def assemble_grid(request: AssembleRequest):
    """Assemble row-major cells into one grid image"""
    spec = request.spec.to_spec()
    try:
        image_b64 = await grid_service.assemble_grid(request.cells, spec)
        return ImageResponse(image_b64=image_b64, width=spec.grid_width, height=spec.grid_height)
    except Exception as e:
        raise _http_error("assemble", e)


@router.post("/resize", response_model=ImageResponse)
async def resize_image(request: ResizeRequest):
    """Force an image to an exact size (cover crops, contain pads)"""
    try:
        image_b64 = await grid_service.enforce_size(request.image, request.width, request.height, request.fit)
        return ImageResponse(image_b64=image_b64, width=request.width, height=request.height)
    except Exception as e:
        raise _http_error("resize", e)


@router.post("/validate", response_model=GeometryReportSchema)
async def validate_grid(request: ValidateRequest):
    """
    Check a grid against its layout contract.

    Reports a mismatch with ok=false, or fails with 422 when strict is set.
    """
    spec = request.spec.to_spec()
    tolerance = request.tolerance if request.tolerance is not None else settings.grid_size_tolerance_px

    try:
        if request.image:
            if request.strict:
                report = await grid_service.ensure_grid_geometry(request.image, spec, tolerance)
            else:
                report = await grid_service.inspect_grid(request.image, spec, tolerance)
        elif request.width and request.height:
            report = grid_service.validate_grid_geometry(request.width, request.height, spec, tolerance)
            if request.strict and not report.ok:
                raise GeometryMismatchError(f"Grid layout mismatch: {report.describe()}", report=report)
        else:
            raise HTTPException(status_code=400, detail="Provide an image or width and height")

        return GeometryReportSchema.model_validate(report)

    except HTTPException:
        raise
    except Exception as e:
        raise _http_error("validate", e)


@router.post("/local-variants", response_model=LocalVariantsResponse)
async def local_variants(request: LocalVariantsRequest):
    """Recolor the garment locally (mask based) for up to 9 colors, optionally as a grid"""
    if request.colors:
        colors = request.colors[:9]
    else:
        try:
            colors = get_palette_colors(request.palette_id)
        except KeyError:
            raise HTTPException(status_code=400, detail=f"Unknown palette: {request.palette_id}")

    try:
        variants = await local_recolor_service.build_variants(
            request.base, request.mask, colors, request.cell_width, request.cell_height
        )
        grid_b64 = None
        if request.assemble:
            options = GutterOptions(
                columns=3,
                rows=3,
                cell_width=request.cell_width,
                cell_height=request.cell_height,
                gap=request.gap,
                background=request.background,
            )
            grid_b64 = await local_recolor_service.assemble_grid(variants, options)
        return LocalVariantsResponse(variants=variants, grid_b64=grid_b64, colors=colors)

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise _http_error("local variants", e)
