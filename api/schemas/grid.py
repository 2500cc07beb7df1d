"""
Pydantic schemas for grid slice/assemble/resize endpoints.

Images are base64 strings, with or without a data URL prefix.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from core.config import settings
from services.grid_service import FitMode, GridSpec

# Upper bounds on requested output sizes (cell edge, whole grid edge)
MAX_EDGE = settings.max_long_edge
MAX_GRID_EDGE = settings.max_long_edge * settings.max_grid_side


class GridSpecSchema(BaseModel):
    """Rows, columns and cell pixel size of a grid."""

    columns: int = Field(3, gt=0, le=settings.max_grid_side)
    rows: int = Field(3, gt=0, le=settings.max_grid_side)
    cell_width: int = Field(..., gt=0, le=MAX_EDGE)
    cell_height: int = Field(..., gt=0, le=MAX_EDGE)

    def to_spec(self) -> GridSpec:
        return GridSpec(
            columns=self.columns, rows=self.rows, cell_width=self.cell_width, cell_height=self.cell_height
        )


class SliceRequest(BaseModel):
    image: str = Field(..., description="Base64 grid image")
    spec: GridSpecSchema


class CellSchema(BaseModel):
    index: int
    row: int
    col: int
    image: str = Field(..., description="Base64 PNG cell")
    width: int
    height: int

    class Config:
        from_attributes = True


class SliceResponse(BaseModel):
    cells: List[CellSchema]
    count: int


class AssembleRequest(BaseModel):
    cells: List[str] = Field(..., description="Base64 cell images in row-major order")
    spec: GridSpecSchema


class ResizeRequest(BaseModel):
    image: str
    width: int = Field(..., gt=0, le=MAX_GRID_EDGE)
    height: int = Field(..., gt=0, le=MAX_GRID_EDGE)
    fit: FitMode = FitMode.COVER


class ImageResponse(BaseModel):
    image_b64: str
    width: int
    height: int


class ValidateRequest(BaseModel):
    """Either an image to inspect, or its width and height."""

    image: Optional[str] = None
    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)
    spec: GridSpecSchema
    tolerance: Optional[int] = Field(None, ge=0, description="Pixels; defaults to the configured tolerance")
    strict: bool = Field(False, description="Fail with 422 instead of reporting a mismatch")


class GeometryReportSchema(BaseModel):
    expected_width: int
    expected_height: int
    actual_width: int
    actual_height: int
    detected_columns: int
    detected_rows: int
    tolerance: int
    ok: bool

    class Config:
        from_attributes = True


class LocalVariantsRequest(BaseModel):
    base: str = Field(..., description="Base64 composite")
    mask: Optional[str] = Field(None, description="Base64 binary garment mask (white = garment)")
    colors: Optional[List[str]] = Field(None, description="Defaults to the selected palette")
    palette_id: str = "classic9"
    cell_width: int = Field(..., gt=0, le=MAX_EDGE)
    cell_height: int = Field(..., gt=0, le=MAX_EDGE)
    gap: int = Field(0, ge=0, le=64)
    background: str = "#000000"
    assemble: bool = True


class LocalVariantsResponse(BaseModel):
    variants: List[str]
    grid_b64: Optional[str] = None
    colors: List[str]
