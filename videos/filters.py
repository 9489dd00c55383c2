"""Turn an ``EncodingPlan`` into ffmpeg filter chains and codec arguments.

Chain order is fixed: resolution normalisation, effect filters in catalog
order, pacing (``setpts``/``atempo``), then fades last so nothing later in
the chain can override them. Every filter string comes from the lookup
tables below; nothing supplied by the user is interpolated.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

from .errors import InvalidPlanError
from .styles import Effect, EncodingPlan, QualityTier, Transition


class EncoderSettings(NamedTuple):
    preset: str
    crf: int
    bitrate_kbps: Optional[int]


QUALITY_SETTINGS: Dict[QualityTier, EncoderSettings] = {
    QualityTier.LOW: EncoderSettings("fast", 28, None),
    QualityTier.MEDIUM: EncoderSettings("medium", 23, None),
    QualityTier.HIGH: EncoderSettings("slow", 18, 4000),
    QualityTier.ULTRA: EncoderSettings("slower", 16, 6000),
}

# Cinematic output never drops below this, whatever the tier says.
CINEMATIC_BITRATE_FLOOR_KBPS = 8000

EFFECT_FILTERS: Dict[Effect, str] = {
    Effect.STABILIZATION: "deshake",
    Effect.NOISE_REDUCTION: "hqdn3d=4:3:6:4.5",
    Effect.COLOR_CORRECTION: "eq=contrast=1.05:brightness=0.02:saturation=1.05",
    Effect.COLOR_GRADE: "colorbalance=rs=0.1:gs=-0.1:bs=0.05",
    Effect.SHARPEN: "unsharp=5:5:1.0:5:5:0.0",
    Effect.VIGNETTE: "vignette=PI/5",
    Effect.GRAIN: "noise=alls=10:allf=t",
}

# fade length in seconds at each end of the output; 0 means a hard cut
TRANSITION_FADE_SECONDS: Dict[Transition, float] = {
    Transition.CUT: 0.0,
    Transition.FADE: 0.5,
    Transition.SMOOTH_FADE: 1.0,
    Transition.FAST_CUTS: 0.25,
    Transition.CINEMATIC_WIPE: 1.5,
    Transition.TRENDY: 0.5,
}

AUDIO_CLEANUP_FILTERS = ["highpass=f=80", "lowpass=f=15000"]
AUDIO_LOUDNORM = "loudnorm=I=-16:TP=-1.5:LRA=11"
MUSIC_VOLUME = 0.3
MUSIC_FADE_SECONDS = 2.0

VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
AUDIO_BITRATE = "128k"
CONTAINER = "mp4"


def _num(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


@dataclass
class FilterGraph:
    video_filters: List[str]
    audio_filters: Optional[List[str]]
    codec_args: List[str]
    container: str = CONTAINER
    music_path: Optional[str] = None
    music_filters: List[str] = field(default_factory=list)

    @property
    def has_audio_output(self) -> bool:
        return self.audio_filters is not None or self.music_path is not None

    def to_args(self, input_path, output_path) -> List[str]:
        """Full ffmpeg argument list (without the binary itself)."""
        args = ["-y", "-i", str(input_path)]
        if self.music_path:
            args += ["-stream_loop", "-1", "-i", str(self.music_path)]
            args += ["-filter_complex", self._complex_graph(), "-map", "[vout]", "-map", "[aout]"]
            if self.audio_filters is None:
                args.append("-shortest")
        else:
            args += ["-vf", ",".join(self.video_filters)]
            if self.audio_filters:
                args += ["-af", ",".join(self.audio_filters)]
            elif self.audio_filters is None:
                args.append("-an")
        args += self.codec_args
        args += ["-f", self.container, str(output_path)]
        return args

    def _complex_graph(self) -> str:
        parts = [f"[0:v]{','.join(self.video_filters)}[vout]"]
        music = ",".join(self.music_filters)
        if self.audio_filters is None:
            parts.append(f"[1:a]{music}[aout]")
        else:
            chain = ",".join(self.audio_filters) or "anull"
            parts.append(f"[0:a]{chain}[a0]")
            parts.append(f"[1:a]{music}[bed]")
            parts.append("[a0][bed]amix=inputs=2:duration=first:dropout_transition=2[aout]")
        return ";".join(parts)


def encoder_settings(plan: EncodingPlan) -> EncoderSettings:
    try:
        settings = QUALITY_SETTINGS[plan.quality]
    except KeyError:
        raise InvalidPlanError(f"Unknown quality tier: {plan.quality!r}")
    if plan.is_cinematic:
        floor = max(settings.bitrate_kbps or 0, CINEMATIC_BITRATE_FLOOR_KBPS)
        settings = settings._replace(bitrate_kbps=floor)
    return settings


def video_filter_chain(plan: EncodingPlan, duration: Optional[float] = None) -> List[str]:
    width, height = plan.resolution
    chain = [
        f"scale={width}:{height}:force_original_aspect_ratio=decrease",
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2",
        "setsar=1",
    ]
    for effect in plan.effects:
        try:
            chain.append(EFFECT_FILTERS[effect])
        except KeyError:
            raise InvalidPlanError(f"Effect outside the catalog: {effect!r}")
    if plan.speed != 1.0:
        chain.append(f"setpts=PTS/{_num(plan.speed)}")
    chain += _fades("fade", plan, duration)
    return chain


def audio_filter_chain(plan: EncodingPlan, duration: Optional[float] = None) -> List[str]:
    chain = list(AUDIO_CLEANUP_FILTERS)
    if plan.speed != 1.0:
        # atempo accepts 0.5..2.0, which covers every pacing speed
        chain.append(f"atempo={_num(plan.speed)}")
    chain.append(AUDIO_LOUDNORM)
    chain += _fades("afade", plan, duration)
    return chain


def _fades(name: str, plan: EncodingPlan, duration: Optional[float]) -> List[str]:
    try:
        length = TRANSITION_FADE_SECONDS[plan.transition]
    except KeyError:
        raise InvalidPlanError(f"Unknown transition: {plan.transition!r}")
    if length <= 0:
        return []
    fades = [f"{name}=t=in:st=0:d={_num(length)}"]
    if duration:
        out_duration = duration / plan.speed
        if out_duration > 2 * length:
            fades.append(f"{name}=t=out:st={_num(out_duration - length)}:d={_num(length)}")
    return fades


def music_filter_chain(duration: Optional[float] = None) -> List[str]:
    chain = [f"volume={_num(MUSIC_VOLUME)}", f"afade=t=in:st=0:d={_num(MUSIC_FADE_SECONDS)}"]
    if duration and duration > 2 * MUSIC_FADE_SECONDS:
        start = duration - MUSIC_FADE_SECONDS
        chain.append(f"afade=t=out:st={_num(start)}:d={_num(MUSIC_FADE_SECONDS)}")
    return chain


def music_bed_for(plan: EncodingPlan, music_dir) -> Optional[Path]:
    """Background track for the plan's music category, if the library has one."""
    if plan.music is None or not music_dir:
        return None
    candidate = Path(music_dir) / f"{plan.music.value}.mp3"
    return candidate if candidate.is_file() else None


def build_filter_graph(
    plan: EncodingPlan,
    *,
    has_audio: bool,
    include_audio: bool = True,
    duration: Optional[float] = None,
    music_path=None,
) -> FilterGraph:
    """Build the filter graph for one normalised input.

    ``duration`` is the source duration in seconds; without it only the
    fade-in can be placed. ``music_path`` mixes a background bed under the
    source audio (or replaces missing audio).
    """
    video = video_filter_chain(plan, duration)
    audio = audio_filter_chain(plan, duration) if (has_audio and include_audio) else None

    settings = encoder_settings(plan)
    codec_args = [
        "-c:v", VIDEO_CODEC,
        "-preset", settings.preset,
        "-crf", str(settings.crf),
    ]
    if settings.bitrate_kbps:
        codec_args += ["-b:v", f"{settings.bitrate_kbps}k"]
    codec_args += ["-pix_fmt", "yuv420p"]

    bed = str(music_path) if (music_path and include_audio) else None
    if audio is not None or bed:
        codec_args += ["-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE]
    codec_args += ["-movflags", "+faststart"]

    out_duration = duration / plan.speed if duration else None
    return FilterGraph(
        video_filters=video,
        audio_filters=audio,
        codec_args=codec_args,
        music_path=bed,
        music_filters=music_filter_chain(out_duration) if bed else [],
    )
