"""Zone clusterer: k-means over raster pixels or synthesized field points.

Each point lives in a 5-dimensional space:
    [canopy proxy, x (0-1), y (0-1), soil moisture (0-1), ET / 10 (0-1)]

When the fetch chain supplies a coarse NDVI preview PNG, points are sampled
from its pixels (luma as the canopy proxy). Otherwise 180 points are
synthesized from a generator seeded purely from the feature values, so
identical inputs always yield identical zones.

K-means starts from the first k points and runs a fixed number of
reassign/recompute iterations. It is deterministic but not globally optimal.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
import logging

import numpy as np
from PIL import Image, UnidentifiedImageError

from src.engine.types import FeatureVector, InferenceRequest, ZoneCluster, Zones
from src.engine.utils import clamp

logger = logging.getLogger(__name__)

ZONE_COUNT = 3
KMEANS_ITERATIONS = 12
SYNTHETIC_POINTS = 180
SAMPLES_PER_AXIS = 24

# ITU-R BT.709 luma weights
LUMA_WEIGHTS = np.array([0.2126, 0.7152, 0.0722])


def run_kmeans(points: np.ndarray, k: int = ZONE_COUNT, iterations: int = KMEANS_ITERATIONS) -> list[ZoneCluster]:
    if len(points) == 0:
        return []
    points = np.asarray(points, dtype=float)
    count = min(k, len(points))
    centroids = points[:count].copy()
    assignments = np.zeros(len(points), dtype=int)

    for _ in range(iterations):
        distances = np.linalg.norm(points[:, None, :] - centroids[None, :, :], axis=2)
        assignments = distances.argmin(axis=1)
        for c in range(count):
            members = points[assignments == c]
            if len(members) == 0:
                continue
            centroids[c] = members.mean(axis=0)

    sizes = np.bincount(assignments, minlength=count)
    return [
        ZoneCluster(id=idx, count=int(sizes[idx]), centroid=[round(float(v), 4) for v in centroids[idx]])
        for idx in range(count)
    ]


def _decode_preview(preview: str) -> Image.Image:
    if preview.startswith("data:") and "," in preview:
        preview = preview.split(",", 1)[1]
    raw = base64.b64decode(preview, validate=False)
    return Image.open(io.BytesIO(raw)).convert("RGB")


def raster_points(preview: str, features: FeatureVector) -> np.ndarray:
    """Sample a base64 PNG on a ~24x24 grid and build one point per pixel."""
    pixels = np.asarray(_decode_preview(preview), dtype=float)
    height, width = pixels.shape[:2]
    stride_y = max(1, height // SAMPLES_PER_AXIS)
    stride_x = max(1, width // SAMPLES_PER_AXIS)

    ys, xs = np.meshgrid(np.arange(0, height, stride_y), np.arange(0, width, stride_x), indexing="ij")
    ys, xs = ys.ravel(), xs.ravel()
    luma = np.clip(pixels[ys, xs] @ LUMA_WEIGHTS / 255.0, 0.0, 1.0)

    n = len(ys)
    return np.column_stack([
        luma,
        xs / max(1, width - 1),
        ys / max(1, height - 1),
        np.full(n, clamp(features.soil_moisture_mean, 0.0, 1.0)),
        np.full(n, clamp(features.et_mean / 10, 0.0, 1.0)),
    ])


def feature_seed(features: FeatureVector) -> int:
    """Stable 64-bit seed derived only from the feature values."""
    key = f"{features.ndvi_mean}:{features.ndvi_spread}:{features.soil_moisture_mean}:{features.et_mean}"
    return int.from_bytes(hashlib.sha256(key.encode()).digest()[:8], "big")


def synthetic_points(features: FeatureVector, n_points: int = SYNTHETIC_POINTS) -> np.ndarray:
    rng = np.random.default_rng(feature_seed(features))
    draws = rng.random((n_points, 5))
    canopy = np.clip(features.ndvi_mean + (draws[:, 2] - 0.5) * features.ndvi_spread, -0.1, 0.95)
    moisture = np.clip(features.soil_moisture_mean + (draws[:, 3] - 0.5) * 0.1, 0.0, 1.0)
    et = np.clip(features.et_mean / 10 + (draws[:, 4] - 0.5) * 0.15, 0.0, 1.0)
    return np.column_stack([canopy, draws[:, 0], draws[:, 1], moisture, et])


def _preview_png(request: InferenceRequest) -> str:
    if request.ndvi_data is not None and request.ndvi_data.preview_png:
        return request.ndvi_data.preview_png
    return request.context.ndvi_preview_png or ""


def compute_zones(request: InferenceRequest, features: FeatureVector) -> Zones:
    preview = _preview_png(request)
    points = np.empty((0, 5))
    if preview:
        try:
            points = raster_points(preview, features)
        except (binascii.Error, UnidentifiedImageError, OSError, ValueError) as exc:
            logger.info("NDVI preview unreadable (%s); using synthetic points", exc)
    if len(points) == 0:
        points = synthetic_points(features)

    clusters = run_kmeans(points, ZONE_COUNT, KMEANS_ITERATIONS)
    return Zones(k=len(clusters), clusters=clusters)
