import json
from typing import Any, Optional, Dict


def ensure_coordinates_dict(raw_coordinates: Any) -> Optional[Dict[str, float]]:
    """
    Normalize a coordinates payload coming from a claim-generation record into
    an ``{x, y, width, height}`` dict in percentage units.

    Handles dicts as well as records where the rectangle was serialized via
    json.dumps before hand-off. Parser-style bboxes (``left/top/width/height``
    as 0-1 page fractions) are converted to percentages.
    """
    if not raw_coordinates:
        return None

    if isinstance(raw_coordinates, str):
        try:
            raw_coordinates = json.loads(raw_coordinates)
        except (json.JSONDecodeError, TypeError):
            return None

    if not isinstance(raw_coordinates, dict):
        return None

    if 'x' in raw_coordinates and 'y' in raw_coordinates:
        keys = ('x', 'y', 'width', 'height')
        try:
            return {key: float(raw_coordinates[key]) for key in keys}
        except (KeyError, TypeError, ValueError):
            return None

    if 'left' in raw_coordinates and 'top' in raw_coordinates:
        try:
            return {
                'x': round(float(raw_coordinates['left']) * 100, 4),
                'y': round(float(raw_coordinates['top']) * 100, 4),
                'width': round(float(raw_coordinates['width']) * 100, 4),
                'height': round(float(raw_coordinates['height']) * 100, 4),
            }
        except (KeyError, TypeError, ValueError):
            return None

    return None


def coordinates_within_page(x: float, y: float, width: float, height: float) -> bool:
    """True when the rectangle lies on the 0-100 canvas without overflowing it."""
    if min(x, y) < 0 or width <= 0 or height <= 0:
        return False
    return x + width <= 100 and y + height <= 100


def summarize_coordinates(raw_coordinates: Any, precision: int = 2) -> str:
    """
    Produce a concise string describing a coordinates dict for logging/debugging.
    """
    coordinates = ensure_coordinates_dict(raw_coordinates)
    if not coordinates:
        return "None"

    return ", ".join(
        f"{key}={value:.{precision}f}" for key, value in coordinates.items()
    )
