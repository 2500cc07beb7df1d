"""
Acceptance predicates for generated images.

A predicate is awaited with a generated base64 image and returns an
AcceptanceResult; decoding runs in the default executor.
Two families exist:
- geometry: does a putative grid honor its rows/columns/pixel contract
- drift: did the non-garment region (face, background) change color

Thresholds are policy (DriftPolicy), defaults come from settings.
"""
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

import numpy as np
from PIL import Image

from core.config import settings
from core.exceptions import DecodeError
from services.grid_service import GridSpec, run_blocking, validate_geometry
from utils.image_codec import ImageInput, decode_image

logger = logging.getLogger(__name__)

# sRGB -> XYZ (D65)
_RGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ],
    dtype=np.float64,
)
_D65_WHITE = np.array([0.95047, 1.0, 1.08883], dtype=np.float64)


@dataclass
class DriftPolicy:
    """Thresholds for accepting a candidate against its reference."""

    max_delta_e: float = field(default_factory=lambda: settings.drift_max_delta_e)
    max_channel_diff: float = field(default_factory=lambda: settings.drift_max_channel_diff)
    white_threshold: int = field(default_factory=lambda: settings.drift_mask_white_threshold)
    sample_step: int = field(default_factory=lambda: settings.drift_sample_step)


@dataclass
class DriftReport:
    mean_delta_e: float
    max_channel_diff: float
    samples: int
    ok: bool


@dataclass
class AcceptanceResult:
    accepted: bool
    reason: str = ""


AcceptPredicate = Callable[[str], Awaitable[AcceptanceResult]]


def srgb_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Convert Nx3 uint8 sRGB samples to CIE Lab (D65)."""
    c = rgb.astype(np.float64) / 255.0
    linear = np.where(c <= 0.04045, c / 12.92, ((c + 0.055) / 1.055) ** 2.4)
    xyz = linear @ _RGB_TO_XYZ.T / _D65_WHITE

    epsilon = 216 / 24389
    kappa = 24389 / 27
    f = np.where(xyz > epsilon, np.cbrt(xyz), (kappa * xyz + 16) / 116)

    lab = np.empty_like(f)
    lab[:, 0] = 116 * f[:, 1] - 16
    lab[:, 1] = 500 * (f[:, 0] - f[:, 1])
    lab[:, 2] = 200 * (f[:, 1] - f[:, 2])
    return lab


def _sample_pixels(image: Image.Image, size, step: int) -> np.ndarray:
    if image.size != size:
        image = image.resize(size, Image.Resampling.BILINEAR)
    return np.asarray(image.convert("RGB"))[::step, ::step]


def measure_drift(
    reference: ImageInput,
    candidate: ImageInput,
    garment_mask: Optional[ImageInput] = None,
    policy: Optional[DriftPolicy] = None,
) -> DriftReport:
    """
    Sample color drift between a reference and a candidate image.

    Both images are compared at the reference size on a sample_step lattice.
    Pixels inside the garment mask (all channels > white_threshold) are
    skipped, since the garment is expected to change.
    """
    policy = policy or DriftPolicy()
    step = max(1, int(policy.sample_step))

    ref_image = decode_image(reference)
    size = ref_image.size
    ref = _sample_pixels(ref_image, size, step)
    cand = _sample_pixels(decode_image(candidate), size, step)

    keep = np.ones(ref.shape[:2], dtype=bool)
    if garment_mask is not None:
        mask = _sample_pixels(decode_image(garment_mask), size, step)
        keep = ~np.all(mask > policy.white_threshold, axis=-1)

    ref_px = ref[keep]
    cand_px = cand[keep]
    samples = int(ref_px.shape[0])
    if samples == 0:
        logger.warning("[Acceptance] No pixels outside the garment mask; drift check skipped")
        return DriftReport(mean_delta_e=0.0, max_channel_diff=0.0, samples=0, ok=True)

    delta_e = np.linalg.norm(srgb_to_lab(ref_px) - srgb_to_lab(cand_px), axis=1)
    channel_diff = np.abs(ref_px.astype(np.float64) - cand_px.astype(np.float64)) / 255.0

    mean_delta_e = float(delta_e.mean())
    mean_channel_diff = float(channel_diff.mean())
    ok = mean_delta_e <= policy.max_delta_e and mean_channel_diff <= policy.max_channel_diff
    return DriftReport(
        mean_delta_e=mean_delta_e, max_channel_diff=mean_channel_diff, samples=samples, ok=ok
    )


def geometry_predicate(spec: GridSpec, tolerance: int = 0) -> AcceptPredicate:
    """Accept images whose size matches the grid contract within tolerance."""

    async def accept(image_b64: str) -> AcceptanceResult:
        try:
            image = await run_blocking(decode_image, image_b64)
        except DecodeError as e:
            return AcceptanceResult(accepted=False, reason=f"undecodable output: {e}")
        report = validate_geometry(image.width, image.height, spec, tolerance)
        if report.ok:
            return AcceptanceResult(accepted=True)
        return AcceptanceResult(accepted=False, reason=report.describe())

    return accept


def drift_predicate(
    reference: ImageInput, garment_mask: Optional[ImageInput] = None, policy: Optional[DriftPolicy] = None
) -> AcceptPredicate:
    """Accept images whose non-garment region stayed within the drift policy."""
    policy = policy or DriftPolicy()

    async def accept(image_b64: str) -> AcceptanceResult:
        try:
            report = await run_blocking(measure_drift, reference, image_b64, garment_mask, policy)
        except DecodeError as e:
            return AcceptanceResult(accepted=False, reason=f"undecodable output: {e}")
        if report.ok:
            return AcceptanceResult(accepted=True)
        return AcceptanceResult(
            accepted=False,
            reason=f"color drift dE={report.mean_delta_e:.2f} channel={report.max_channel_diff:.4f}",
        )

    return accept
