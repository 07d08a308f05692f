"""Per-recording visual configuration: cursor skin, zoom camera, pointer effects.

These are stored inside the recording metadata JSON next to the
timeline they style.  Every config has ``to_dict()`` / ``from_dict()``
with camelCase keys; ``from_dict()`` ignores unknown keys and fills
missing ones from the defaults so older files keep loading.
"""

from dataclasses import dataclass, field, fields
from typing import Tuple


def _known(cls, d: dict, renames: dict) -> dict:
    """Map camelCase JSON keys onto dataclass field names, dropping the rest."""
    names = {f.name for f in fields(cls)}
    out = {}
    for key, value in d.items():
        name = renames.get(key, key)
        if name in names:
            out[name] = value
    return out


def hex_to_bgr(color: str) -> Tuple[int, int, int]:
    """Convert ``#rrggbb`` (or ``rrggbb``) to an OpenCV BGR tuple."""
    c = color.strip().lstrip("#")
    if len(c) == 3:
        c = "".join(ch * 2 for ch in c)
    if len(c) != 6:
        raise ValueError(f"Invalid colour: {color!r}")
    r, g, b = int(c[0:2], 16), int(c[2:4], 16), int(c[4:6], 16)
    return b, g, r


# ── Cursor ──────────────────────────────────────────────────────────

DEFAULT_CURSOR_SIZE = 32          # cursor glyph height in video pixels
DEFAULT_CURSOR_COLOR = "#ffffff"


@dataclass
class CursorConfig:
    """How the synthesized cursor is drawn."""
    size: float = DEFAULT_CURSOR_SIZE
    shape: str = "auto"             # "auto" follows the recording, else forces one shape
    color: str = DEFAULT_CURSOR_COLOR
    smoothing: float = 0.0          # 0 = raw keyframes, 1 = heaviest smoothing
    hide_when_static: bool = False
    click_animation: bool = True

    _RENAMES = {"hideWhenStatic": "hide_when_static", "clickAnimation": "click_animation"}

    def to_dict(self) -> dict:
        return {
            "size": self.size,
            "shape": self.shape,
            "color": self.color,
            "smoothing": self.smoothing,
            "hideWhenStatic": self.hide_when_static,
            "clickAnimation": self.click_animation,
        }

    @staticmethod
    def from_dict(d: dict) -> "CursorConfig":
        return CursorConfig(**_known(CursorConfig, d, CursorConfig._RENAMES))


# ── Zoom ────────────────────────────────────────────────────────────

DEFAULT_ZOOM_LEVEL = 2.0
DEFAULT_DEAD_ZONE = 15.0          # px in video space


@dataclass
class SpringPhysics:
    """Damped spring parameters for the zoom camera.

    ``tension`` is the spring stiffness, ``friction`` the damping and
    ``mass`` the inertia of the camera.
    """
    tension: float = 170.0
    friction: float = 26.0
    mass: float = 1.0

    def to_dict(self) -> dict:
        return {"tension": self.tension, "friction": self.friction, "mass": self.mass}

    @staticmethod
    def from_dict(d: dict) -> "SpringPhysics":
        return SpringPhysics(**_known(SpringPhysics, d, {}))


# Named spring presets exposed to the CLI / preferences.
SPRING_PRESETS = {
    "default": SpringPhysics(170.0, 26.0, 1.0),
    "gentle": SpringPhysics(120.0, 20.0, 1.0),
    "smooth": SpringPhysics(180.0, 24.0, 1.0),
    "snappy": SpringPhysics(300.0, 30.0, 1.0),
    "cinematic": SpringPhysics(80.0, 18.0, 1.5),
}


@dataclass
class ZoomConfig:
    """Camera behaviour while replaying zoom sections."""
    enabled: bool = True
    level: float = DEFAULT_ZOOM_LEVEL
    transition_speed: float = 300.0   # ms, used by auto-zoom for lead-in/out
    padding: float = 0.0              # extra px of context on each side of the crop
    follow_speed: float = 1.0         # time multiplier for the spring
    follow_cursor: bool = False       # track the cursor instead of the section target
    dead_zone: float = DEFAULT_DEAD_ZONE
    auto_zoom: bool = False
    physics: SpringPhysics = field(default_factory=SpringPhysics)

    _RENAMES = {
        "transitionSpeed": "transition_speed",
        "followSpeed": "follow_speed",
        "followCursor": "follow_cursor",
        "deadZone": "dead_zone",
        "autoZoom": "auto_zoom",
    }

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "level": self.level,
            "transitionSpeed": self.transition_speed,
            "padding": self.padding,
            "followSpeed": self.follow_speed,
            "followCursor": self.follow_cursor,
            "deadZone": self.dead_zone,
            "autoZoom": self.auto_zoom,
            "physics": self.physics.to_dict(),
        }

    @staticmethod
    def from_dict(d: dict) -> "ZoomConfig":
        kwargs = _known(ZoomConfig, d, ZoomConfig._RENAMES)
        if isinstance(kwargs.get("physics"), dict):
            kwargs["physics"] = SpringPhysics.from_dict(kwargs["physics"])
        return ZoomConfig(**kwargs)

    @staticmethod
    def disabled() -> "ZoomConfig":
        return ZoomConfig(enabled=False)


# ── Pointer effects ─────────────────────────────────────────────────


@dataclass
class ClickCirclesConfig:
    enabled: bool = False
    size: float = 40.0        # max radius in px
    color: str = "#ffffff"
    duration: float = 400.0   # ms

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "size": self.size,
                "color": self.color, "duration": self.duration}

    @staticmethod
    def from_dict(d: dict) -> "ClickCirclesConfig":
        return ClickCirclesConfig(**_known(ClickCirclesConfig, d, {}))


@dataclass
class TrailConfig:
    enabled: bool = False
    length: int = 5           # number of ghost positions
    fade_speed: float = 0.5   # opacity lost per ghost step (0..1)
    color: str = "#ffffff"

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "length": self.length,
                "fadeSpeed": self.fade_speed, "color": self.color}

    @staticmethod
    def from_dict(d: dict) -> "TrailConfig":
        return TrailConfig(**_known(TrailConfig, d, {"fadeSpeed": "fade_speed"}))


@dataclass
class HighlightRingConfig:
    enabled: bool = False
    size: float = 30.0        # base radius in px
    color: str = "#ffffff"
    pulse_speed: float = 0.5  # pulses per second

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "size": self.size,
                "color": self.color, "pulseSpeed": self.pulse_speed}

    @staticmethod
    def from_dict(d: dict) -> "HighlightRingConfig":
        return HighlightRingConfig(**_known(HighlightRingConfig, d, {"pulseSpeed": "pulse_speed"}))


@dataclass
class MouseEffectsConfig:
    """Container for the three pointer effects.  All disabled by default."""
    click_circles: ClickCirclesConfig = field(default_factory=ClickCirclesConfig)
    trail: TrailConfig = field(default_factory=TrailConfig)
    highlight_ring: HighlightRingConfig = field(default_factory=HighlightRingConfig)

    @property
    def any_enabled(self) -> bool:
        return self.click_circles.enabled or self.trail.enabled or self.highlight_ring.enabled

    def to_dict(self) -> dict:
        return {
            "clickCircles": self.click_circles.to_dict(),
            "trail": self.trail.to_dict(),
            "highlightRing": self.highlight_ring.to_dict(),
        }

    @staticmethod
    def from_dict(d: dict) -> "MouseEffectsConfig":
        return MouseEffectsConfig(
            click_circles=ClickCirclesConfig.from_dict(d.get("clickCircles", {})),
            trail=TrailConfig.from_dict(d.get("trail", {})),
            highlight_ring=HighlightRingConfig.from_dict(d.get("highlightRing", {})),
        )
