from typing import Tuple
import numpy as np

from .constants import (
    TITRATION_DROP_THRESHOLD,
    TITRATION_EARLY_FADE,
    TITRATION_START_COLOR,
    TITRATION_END_COLOR,
)

# -----------------------------
# Utility functions
# -----------------------------

def hex_to_rgb(hex_color: str) -> Tuple[float, float, float]:
    """
    Convert a hex color string (#RRGGBB or RRGGBB) to RGB tuple scaled 0-1.
    """
    hex_color = hex_color.strip().lstrip('#')
    if len(hex_color) != 6:
        raise ValueError(f"Invalid hex color: {hex_color}")
    r = int(hex_color[0:2], 16) / 255.0
    g = int(hex_color[2:4], 16) / 255.0
    b = int(hex_color[4:6], 16) / 255.0
    return (r, g, b)


def rgb_to_hex(rgb: Tuple[float, float, float]) -> str:
    """
    Convert an RGB tuple scaled 0-1 to hex string #rrggbb
    """
    return "#{:02x}{:02x}{:02x}".format(
        int(round(max(0, min(1, rgb[0])) * 255)),
        int(round(max(0, min(1, rgb[1])) * 255)),
        int(round(max(0, min(1, rgb[2])) * 255))
    )


def lerp_rgb(start: Tuple[float, float, float], end: Tuple[float, float, float], t: float) -> Tuple[float, float, float]:
    """Linear interpolation between two RGB tuples, t clamped to [0, 1]."""
    t = float(np.clip(t, 0.0, 1.0))
    out = np.asarray(start, dtype=float) + (np.asarray(end, dtype=float) - np.asarray(start, dtype=float)) * t
    return (float(out[0]), float(out[1]), float(out[2]))


# -----------------------------
# Titration endpoint
# -----------------------------

def titration_progress(drop_count: int, threshold: int = TITRATION_DROP_THRESHOLD) -> float:
    """
    Interpolation factor for the indicator color after drop_count drops.

    Drops before the threshold barely move the color (a quadratic ramp that
    tops out at TITRATION_EARLY_FADE); the threshold drop snaps to 1.0.
    """
    if drop_count <= 0:
        return 0.0
    if drop_count >= threshold:
        return 1.0
    if threshold <= 1:
        return 1.0
    ramp = drop_count / float(threshold - 1)
    return TITRATION_EARLY_FADE * ramp * ramp


def titration_rgb(drop_count: int, threshold: int = TITRATION_DROP_THRESHOLD) -> Tuple[float, float, float]:
    return lerp_rgb(hex_to_rgb(TITRATION_START_COLOR), hex_to_rgb(TITRATION_END_COLOR),
                    titration_progress(drop_count, threshold))


def titration_color(drop_count: int, threshold: int = TITRATION_DROP_THRESHOLD) -> str:
    """Hex display color of the titration flask after drop_count drops."""
    return rgb_to_hex(titration_rgb(drop_count, threshold))


def color_delta(a: Tuple[float, float, float], b: Tuple[float, float, float]) -> float:
    """Largest per-channel difference between two RGB tuples."""
    return float(np.max(np.abs(np.asarray(a, dtype=float) - np.asarray(b, dtype=float))))
