"""Map the editing wizard's answers onto a concrete encoding plan.

Every catalog is a closed ``Enum`` and every mapping table is checked for
exhaustiveness when the module is imported, so a new style/audience/duration
without an entry fails loudly instead of silently getting the default plan.
The default plan is only for *input* that cannot be recognised.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple, Type, TypeVar


class EditingStyle(Enum):
    DYNAMIC = "Dynamic & Energetic"
    SMOOTH = "Smooth & Professional"
    CINEMATIC = "Cinematic"
    SOCIAL_MEDIA = "Social Media Ready"
    DOCUMENTARY = "Documentary Style"
    MINIMAL = "Minimal & Clean"


class TargetAudience(Enum):
    YOUNG_ADULTS = "Young Adults (18-30)"
    ADULTS = "Adults (30-50)"
    SENIORS = "Seniors (50+)"
    FAMILIES = "Families"
    PROFESSIONALS = "Professionals"
    STUDENTS = "Students"
    GENERAL_PUBLIC = "General Public"
    SPECIFIC_NICHE = "Specific Niche"


class DurationBucket(Enum):
    SECONDS_15_30 = "15-30 seconds"
    SECONDS_30_60 = "30-60 seconds"
    MINUTES_1_2 = "1-2 minutes"
    MINUTES_2_5 = "2-5 minutes"
    MINUTES_5_10 = "5-10 minutes"
    MINUTES_10_PLUS = "10+ minutes"
    KEEP_ORIGINAL = "Keep original"
    AUTO = "Let AI decide"


class QualityTier(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    ULTRA = "ultra"


class Effect(Enum):
    """Effect catalog. Declaration order is the order filters are applied in."""

    STABILIZATION = "stabilization"
    NOISE_REDUCTION = "noise_reduction"
    COLOR_CORRECTION = "color_correction"
    COLOR_GRADE = "color_grade"
    SHARPEN = "sharpen"
    VIGNETTE = "vignette"
    GRAIN = "film_grain"


class Transition(Enum):
    CUT = "simple_cut"
    FADE = "fade"
    SMOOTH_FADE = "smooth_fade"
    FAST_CUTS = "fast_cuts"
    CINEMATIC_WIPE = "cinematic_wipe"
    TRENDY = "trendy_transitions"


class MusicCategory(Enum):
    UPBEAT_MODERN = "upbeat_modern"
    CONTEMPORARY_PROFESSIONAL = "contemporary_professional"
    CLASSIC_GENTLE = "classic_gentle"
    FAMILY_FRIENDLY = "family_friendly"
    CORPORATE_AMBIENT = "corporate_ambient"
    ENERGETIC_FOCUS = "energetic_focus"
    UNIVERSAL_APPEAL = "universal_appeal"
    CUSTOM_MATCH = "custom_match"


class Pacing(Enum):
    VERY_FAST = "very_fast"
    FAST = "fast"
    MEDIUM_FAST = "medium_fast"
    MEDIUM = "medium"
    SLOW = "slow"
    VERY_SLOW = "very_slow"
    ORIGINAL = "original"
    AUTO = "auto"

    @property
    def speed(self) -> float:
        return PACING_SPEED[self]


Resolution = Tuple[int, int]

LANDSCAPE_1080P: Resolution = (1920, 1080)
PORTRAIT_1080P: Resolution = (1080, 1920)


STYLE_QUALITY: Dict[EditingStyle, QualityTier] = {
    EditingStyle.DYNAMIC: QualityTier.HIGH,
    EditingStyle.SMOOTH: QualityTier.ULTRA,
    EditingStyle.CINEMATIC: QualityTier.ULTRA,
    EditingStyle.SOCIAL_MEDIA: QualityTier.MEDIUM,
    EditingStyle.DOCUMENTARY: QualityTier.HIGH,
    EditingStyle.MINIMAL: QualityTier.HIGH,
}

STYLE_EFFECTS: Dict[EditingStyle, Tuple[Effect, ...]] = {
    EditingStyle.DYNAMIC: (Effect.COLOR_GRADE, Effect.SHARPEN),
    EditingStyle.SMOOTH: (Effect.COLOR_CORRECTION, Effect.STABILIZATION),
    EditingStyle.CINEMATIC: (Effect.GRAIN, Effect.COLOR_GRADE, Effect.VIGNETTE),
    EditingStyle.SOCIAL_MEDIA: (Effect.COLOR_GRADE, Effect.SHARPEN),
    EditingStyle.DOCUMENTARY: (Effect.COLOR_CORRECTION, Effect.STABILIZATION),
    EditingStyle.MINIMAL: (Effect.COLOR_CORRECTION, Effect.NOISE_REDUCTION),
}

STYLE_TRANSITION: Dict[EditingStyle, Transition] = {
    EditingStyle.DYNAMIC: Transition.FAST_CUTS,
    EditingStyle.SMOOTH: Transition.SMOOTH_FADE,
    EditingStyle.CINEMATIC: Transition.CINEMATIC_WIPE,
    EditingStyle.SOCIAL_MEDIA: Transition.TRENDY,
    EditingStyle.DOCUMENTARY: Transition.CUT,
    EditingStyle.MINIMAL: Transition.FADE,
}

STYLE_RESOLUTION: Dict[EditingStyle, Resolution] = {
    EditingStyle.DYNAMIC: LANDSCAPE_1080P,
    EditingStyle.SMOOTH: LANDSCAPE_1080P,
    EditingStyle.CINEMATIC: LANDSCAPE_1080P,
    EditingStyle.SOCIAL_MEDIA: PORTRAIT_1080P,
    EditingStyle.DOCUMENTARY: LANDSCAPE_1080P,
    EditingStyle.MINIMAL: LANDSCAPE_1080P,
}

AUDIENCE_MUSIC: Dict[TargetAudience, MusicCategory] = {
    TargetAudience.YOUNG_ADULTS: MusicCategory.UPBEAT_MODERN,
    TargetAudience.ADULTS: MusicCategory.CONTEMPORARY_PROFESSIONAL,
    TargetAudience.SENIORS: MusicCategory.CLASSIC_GENTLE,
    TargetAudience.FAMILIES: MusicCategory.FAMILY_FRIENDLY,
    TargetAudience.PROFESSIONALS: MusicCategory.CORPORATE_AMBIENT,
    TargetAudience.STUDENTS: MusicCategory.ENERGETIC_FOCUS,
    TargetAudience.GENERAL_PUBLIC: MusicCategory.UNIVERSAL_APPEAL,
    TargetAudience.SPECIFIC_NICHE: MusicCategory.CUSTOM_MATCH,
}

DURATION_PACING: Dict[DurationBucket, Pacing] = {
    DurationBucket.SECONDS_15_30: Pacing.VERY_FAST,
    DurationBucket.SECONDS_30_60: Pacing.FAST,
    DurationBucket.MINUTES_1_2: Pacing.MEDIUM_FAST,
    DurationBucket.MINUTES_2_5: Pacing.MEDIUM,
    DurationBucket.MINUTES_5_10: Pacing.SLOW,
    DurationBucket.MINUTES_10_PLUS: Pacing.VERY_SLOW,
    DurationBucket.KEEP_ORIGINAL: Pacing.ORIGINAL,
    DurationBucket.AUTO: Pacing.AUTO,
}

# playback speed multiplier; 1.0 leaves timestamps untouched
PACING_SPEED: Dict[Pacing, float] = {
    Pacing.VERY_FAST: 1.5,
    Pacing.FAST: 1.25,
    Pacing.MEDIUM_FAST: 1.1,
    Pacing.MEDIUM: 1.0,
    Pacing.SLOW: 0.9,
    Pacing.VERY_SLOW: 0.8,
    Pacing.ORIGINAL: 1.0,
    Pacing.AUTO: 1.0,
}

# Short names accepted in addition to the wizard labels and enum names.
_STYLE_ALIASES = {
    "energetic": EditingStyle.DYNAMIC,
    "professional": EditingStyle.SMOOTH,
    "social": EditingStyle.SOCIAL_MEDIA,
    "documentary": EditingStyle.DOCUMENTARY,
    "clean": EditingStyle.MINIMAL,
}

_DURATION_ALIASES = {
    "15_30s": DurationBucket.SECONDS_15_30,
    "30_60s": DurationBucket.SECONDS_30_60,
    "1_2m": DurationBucket.MINUTES_1_2,
    "2_5m": DurationBucket.MINUTES_2_5,
    "5_10m": DurationBucket.MINUTES_5_10,
    "10m": DurationBucket.MINUTES_10_PLUS,
    "original": DurationBucket.KEEP_ORIGINAL,
}


@dataclass(frozen=True)
class EncodingPlan:
    quality: QualityTier
    effects: Tuple[Effect, ...]
    transition: Transition
    music: Optional[MusicCategory]
    pacing: Pacing
    resolution: Resolution = LANDSCAPE_1080P
    style: Optional[EditingStyle] = field(default=None)

    @property
    def speed(self) -> float:
        return self.pacing.speed

    @property
    def is_cinematic(self) -> bool:
        return self.style is EditingStyle.CINEMATIC

    def to_dict(self) -> dict:
        """JSON-friendly form, used for diagnostics and the status API."""
        return {
            "style": self.style.value if self.style else None,
            "quality": self.quality.value,
            "effects": [e.value for e in self.effects],
            "transition": self.transition.value,
            "music": self.music.value if self.music else None,
            "pacing": self.pacing.value,
            "speed": self.speed,
            "resolution": list(self.resolution),
        }


DEFAULT_PLAN = EncodingPlan(
    quality=QualityTier.MEDIUM,
    effects=(Effect.COLOR_CORRECTION,),
    transition=Transition.FADE,
    music=None,
    pacing=Pacing.MEDIUM,
)


E = TypeVar("E", bound=Enum)


def _normalize(raw: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", raw.strip().lower()).strip("_")


def _lookup(enum_cls: Type[E], raw, aliases: Optional[Dict[str, E]] = None) -> Optional[E]:
    """Match by wizard label, enum name or alias; ``None`` when unrecognised."""
    if isinstance(raw, enum_cls):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        return None
    key = _normalize(raw)
    for member in enum_cls:
        if key in (_normalize(member.value), member.name.lower()):
            return member
    if aliases:
        return aliases.get(key)
    return None


def parse_style(raw) -> Optional[EditingStyle]:
    return _lookup(EditingStyle, raw, _STYLE_ALIASES)


def parse_audience(raw) -> Optional[TargetAudience]:
    return _lookup(TargetAudience, raw)


def parse_duration(raw) -> Optional[DurationBucket]:
    return _lookup(DurationBucket, raw, _DURATION_ALIASES)


def _catalog_order(effects) -> Tuple[Effect, ...]:
    order = list(Effect)
    return tuple(sorted(set(effects), key=order.index))


def resolve_plan(editing_style=None, target_audience=None, duration=None) -> EncodingPlan:
    """Resolve wizard answers into an ``EncodingPlan``.

    Never raises: each unrecognised or missing answer falls back to the
    matching part of ``DEFAULT_PLAN`` independently of the others.
    """
    style = parse_style(editing_style)
    audience = parse_audience(target_audience)
    bucket = parse_duration(duration)

    if style is None:
        quality = DEFAULT_PLAN.quality
        effects = DEFAULT_PLAN.effects
        transition = DEFAULT_PLAN.transition
        resolution = DEFAULT_PLAN.resolution
    else:
        quality = STYLE_QUALITY[style]
        effects = _catalog_order(STYLE_EFFECTS[style])
        transition = STYLE_TRANSITION[style]
        resolution = STYLE_RESOLUTION[style]

    return EncodingPlan(
        quality=quality,
        effects=effects,
        transition=transition,
        music=AUDIENCE_MUSIC[audience] if audience else DEFAULT_PLAN.music,
        pacing=DURATION_PACING[bucket] if bucket else DEFAULT_PLAN.pacing,
        resolution=resolution,
        style=style,
    )


def _check_exhaustive(table: dict, enum_cls: Type[Enum]) -> None:
    missing = [m.name for m in enum_cls if m not in table]
    if missing:
        raise RuntimeError(f"{enum_cls.__name__} members without a mapping: {', '.join(missing)}")


for _table, _enum in (
    (STYLE_QUALITY, EditingStyle),
    (STYLE_EFFECTS, EditingStyle),
    (STYLE_TRANSITION, EditingStyle),
    (STYLE_RESOLUTION, EditingStyle),
    (AUDIENCE_MUSIC, TargetAudience),
    (DURATION_PACING, DurationBucket),
    (PACING_SPEED, Pacing),
):
    _check_exhaustive(_table, _enum)
