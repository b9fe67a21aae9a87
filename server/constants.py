"""Centralized constants for file types, model types and list defaults.

This module provides a single source of truth for upload extension checks
and record defaults, eliminating duplicate string lists across services.
"""

from typing import FrozenSet

# =============================================================================
# FILE CATEGORIES
# =============================================================================

STATIC_MODEL_EXTENSIONS: FrozenSet[str] = frozenset([
    '.obj', '.fbx', '.gltf', '.glb', '.stl', '.dae', '.3ds', '.3dm', '.ply',
    '.usd', '.usdz',
])

BIM_MODEL_EXTENSIONS: FrozenSet[str] = frozenset([
    '.ifc', '.rvt', '.nwd', '.nwc', '.dwg',
])

POINT_CLOUD_EXTENSIONS: FrozenSet[str] = frozenset([
    '.las', '.laz', '.e57', '.xyz', '.pts', '.rcp', '.rcs',
])

# PLY / OBJ frame sequences
VOLUMETRIC_VIDEO_EXTENSIONS: FrozenSet[str] = frozenset([
    '.ply', '.obj',
])

IMAGE_EXTENSIONS: FrozenSet[str] = frozenset([
    '.jpg', '.jpeg', '.png', '.tiff', '.tif',
])

DATA_EXTENSIONS: FrozenSet[str] = frozenset([
    '.csv', '.json', '.pdf',
])

# Combined set accepted for model records
ALLOWED_EXTENSIONS: FrozenSet[str] = (
    STATIC_MODEL_EXTENSIONS
    | BIM_MODEL_EXTENSIONS
    | POINT_CLOUD_EXTENSIONS
    | IMAGE_EXTENSIONS
    | DATA_EXTENSIONS
)

# =============================================================================
# MODEL TYPES
# =============================================================================

MODEL_TYPE_STATIC = 'static'
MODEL_TYPE_VOLUMETRIC_VIDEO = 'volumetric_video'

MODEL_TYPES: FrozenSet[str] = frozenset([
    MODEL_TYPE_STATIC,
    MODEL_TYPE_VOLUMETRIC_VIDEO,
    'point_cloud',
    'bim',
])

# =============================================================================
# LIST DEFAULTS
# =============================================================================

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 100
# Keeps OFFSET inside SQLite's 64-bit integer range
MAX_PAGE = 100_000

DEFAULT_FRAME_LIMIT = 100
MAX_FRAME_LIMIT = 1000
MAX_FRAME_NUMBER = 2**31 - 1

VOLUMETRIC_FORMAT_PLY_SEQUENCE = 'PLY_SEQUENCE'
PHOTOGRAMMETRY_STATUSES: FrozenSet[str] = frozenset([
    'pending',
    'processing',
    'completed',
    'failed',
])


def detect_model_type(file_type: str, requested: str = None) -> str:
    """Pick the stored model type for a file extension.

    An explicit volumetric request on a PLY/OBJ file is honoured; otherwise
    the requested type (or 'static') is kept.
    """
    if requested == MODEL_TYPE_VOLUMETRIC_VIDEO and file_type in VOLUMETRIC_VIDEO_EXTENSIONS:
        return MODEL_TYPE_VOLUMETRIC_VIDEO
    if requested and requested != MODEL_TYPE_VOLUMETRIC_VIDEO:
        return requested
    return MODEL_TYPE_STATIC


def normalize_extension(file_type: str) -> str:
    """Lower-case extension with a leading dot ('GLB' -> '.glb')."""
    ext = (file_type or '').strip().lower()
    if ext and not ext.startswith('.'):
        ext = '.' + ext
    return ext
