"""
Color derivation for diagram styling.

Turns one base hex color (a department or role color) into the palette the
flowchart needs: fill / stroke / text for department lanes and role-tinted
nodes.  Every function is pure and deterministic.

Usage:
    from raciflow.services.colors import lane_colors, ColorPalette

    lane_colors("#0ea5e9")   # -> NodeColors(fill="#0ea5e9", stroke="#096b97", text="#f8fafc")
    palette = ColorPalette()
    palette.next()           # -> "#0ea5e9"
"""

from __future__ import annotations

import re
from dataclasses import dataclass

HEX_COLOR_RE = re.compile(r"^#([0-9a-fA-F]{6})$")
SHORT_HEX_COLOR_RE = re.compile(r"^#([0-9a-fA-F]{3})$")

DEFAULT_FALLBACK_COLOR = "#082f49"
DEFAULT_ENTITY_COLOR = "#C7D2FE"

DARK_TEXT_COLOR = "#0f172a"
LIGHT_TEXT_COLOR = "#f8fafc"
LUMINANCE_THRESHOLD = 0.55

LANE_STROKE_SHADE = -0.35
ROLE_STROKE_SHADE = -0.45

DEFAULT_PALETTE_COLORS: tuple[str, ...] = (
    "#0ea5e9",
    "#22c55e",
    "#f97316",
    "#a855f7",
    "#facc15",
    "#ef4444",
    "#14b8a6",
)


@dataclass(frozen=True)
class NodeColors:
    """Fill / stroke / text triple for one styled diagram element."""
    fill: str
    stroke: str
    text: str

    def to_dict(self) -> dict:
        return {"fill": self.fill, "stroke": self.stroke, "text": self.text}


# ── Parsing ───────────────────────────────────────────────────────────────────


def normalize_hex(value, fallback: str = DEFAULT_FALLBACK_COLOR) -> str:
    """Return ``value`` as a lower-case ``#rrggbb`` string, or ``fallback``.

    Accepts 6-digit and 3-digit shorthand hex (``#abc`` → ``#aabbcc``).
    Any other input (None, rgb(), named colors) yields the fallback unchanged.
    """
    if not isinstance(value, str):
        return fallback
    trimmed = value.strip()
    if HEX_COLOR_RE.match(trimmed):
        return trimmed.lower()
    short = SHORT_HEX_COLOR_RE.match(trimmed)
    if short:
        r, g, b = short.group(1)
        return f"#{r}{r}{g}{g}{b}{b}".lower()
    return fallback


def is_hex_color(value) -> bool:
    """True when ``value`` normalizes to a hex color without falling back."""
    return normalize_hex(value, fallback="") != ""


def hex_to_rgb(hex_color: str, fallback: str = DEFAULT_FALLBACK_COLOR) -> tuple[int, int, int]:
    normalized = normalize_hex(hex_color, fallback)
    numeric = int(normalized[1:], 16)
    return (numeric >> 16) & 255, (numeric >> 8) & 255, numeric & 255


def _rgb_to_hex(channels) -> str:
    return "#" + "".join(f"{c:02x}" for c in channels)


# ── Derivation ────────────────────────────────────────────────────────────────


def mix(hex_color: str, amount: float, fallback: str = DEFAULT_FALLBACK_COLOR) -> str:
    """Shift a color toward black (amount < 0) or white (amount > 0).

    ``|amount|`` is clamped to [0, 1]; 0 returns the (normalized) input,
    -1 returns black and 1 returns white.
    """
    target = 0 if amount < 0 else 255
    ratio = min(1.0, max(0.0, abs(amount)))

    def _channel(channel: int) -> int:
        value = int(_round_half_up(channel + (target - channel) * ratio))
        return min(255, max(0, value))

    return _rgb_to_hex(_channel(c) for c in hex_to_rgb(hex_color, fallback))


def _round_half_up(value: float) -> float:
    # Python's round() is banker's rounding; channel mixing rounds .5 up.
    return float(int(value + 0.5)) if value >= 0 else -float(int(-value + 0.5))


def relative_luminance(hex_color: str, fallback: str = DEFAULT_FALLBACK_COLOR) -> float:
    """WCAG relative luminance of a color, in [0, 1]."""

    def _linear(channel: int) -> float:
        value = channel / 255
        if value <= 0.03928:
            return value / 12.92
        return ((value + 0.055) / 1.055) ** 2.4

    r, g, b = (_linear(c) for c in hex_to_rgb(hex_color, fallback))
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


def contrasting_text(hex_color: str, fallback: str = DEFAULT_FALLBACK_COLOR) -> str:
    """Return the dark or light text color readable on ``hex_color``."""
    if relative_luminance(hex_color, fallback) > LUMINANCE_THRESHOLD:
        return DARK_TEXT_COLOR
    return LIGHT_TEXT_COLOR


def lane_colors(base: str, fallback: str = DEFAULT_FALLBACK_COLOR) -> NodeColors:
    """Colors for a department lane (diagram subgraph)."""
    fill = normalize_hex(base, fallback)
    return NodeColors(fill=fill, stroke=mix(fill, LANE_STROKE_SHADE), text=contrasting_text(fill))


def role_node_colors(base: str, fallback: str = DEFAULT_FALLBACK_COLOR) -> NodeColors:
    """Colors for a step node tinted by its assigned role."""
    fill = normalize_hex(base, fallback)
    return NodeColors(fill=fill, stroke=mix(fill, ROLE_STROKE_SHADE), text=contrasting_text(fill))


# ── Palette ───────────────────────────────────────────────────────────────────


class ColorPalette:
    """Round-robin color source for newly created departments and roles.

    One instance per editing session; instances never share their cursor.

    Args:
        colors: Palette entries, cycled in order.
        start: Initial cursor position (e.g. the number of existing
            departments, so a new one does not reuse the first color).
    """

    def __init__(self, colors: tuple[str, ...] | list[str] = DEFAULT_PALETTE_COLORS, start: int = 0):
        if not colors:
            raise ValueError("ColorPalette requires at least one color")
        self.colors = tuple(normalize_hex(c, DEFAULT_FALLBACK_COLOR) for c in colors)
        self.cursor = max(0, int(start))

    def next(self) -> str:
        color = self.colors[self.cursor % len(self.colors)]
        self.cursor += 1
        return color
