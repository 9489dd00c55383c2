import pytest

from videos.errors import InvalidPlanError
from videos.filters import (
    AUDIO_LOUDNORM,
    EFFECT_FILTERS,
    build_filter_graph,
    encoder_settings,
    music_bed_for,
)
from videos.jobs import StylePreferences
from videos.styles import DEFAULT_PLAN, EncodingPlan, Effect, Pacing, QualityTier, Transition, resolve_plan


def _flag(args, name):
    return args[args.index(name) + 1]


def test_cinematic_plan_chain_order_and_bitrate_floor():
    plan = resolve_plan("Cinematic", "Young Adults (18-30)", "15-30 seconds")
    graph = build_filter_graph(plan, has_audio=True, duration=30.0)

    assert graph.video_filters == [
        "scale=1920:1080:force_original_aspect_ratio=decrease",
        "pad=1920:1080:(ow-iw)/2:(oh-ih)/2",
        "setsar=1",
        EFFECT_FILTERS[Effect.COLOR_GRADE],
        EFFECT_FILTERS[Effect.VIGNETTE],
        EFFECT_FILTERS[Effect.GRAIN],
        "setpts=PTS/1.5",
        "fade=t=in:st=0:d=1.5",
        "fade=t=out:st=18.5:d=1.5",
    ]
    assert _flag(graph.codec_args, "-preset") == "slower"
    assert _flag(graph.codec_args, "-crf") == "16"
    assert _flag(graph.codec_args, "-b:v") == "8000k"


def test_audio_chain_tempo_before_loudnorm_and_fades_last():
    plan = resolve_plan("Dynamic & Energetic", duration="30-60 seconds")
    graph = build_filter_graph(plan, has_audio=True, duration=10.0)

    audio = graph.audio_filters
    assert audio.index("atempo=1.25") < audio.index(AUDIO_LOUDNORM)
    assert audio[-2].startswith("afade=t=in")
    assert audio[-1].startswith("afade=t=out")


def test_medium_quality_has_no_bitrate_cap():
    graph = build_filter_graph(DEFAULT_PLAN, has_audio=True)
    assert "-b:v" not in graph.codec_args
    assert _flag(graph.codec_args, "-crf") == "23"


def test_high_tier_outside_cinematic_keeps_its_bitrate():
    assert encoder_settings(resolve_plan("Documentary Style")).bitrate_kbps == 4000


def test_silent_source_drops_audio():
    args = build_filter_graph(DEFAULT_PLAN, has_audio=False).to_args("in.mp4", "out.mp4")
    assert "-an" in args
    assert "-af" not in args
    assert "-c:a" not in args
    assert args[-3:] == ["-f", "mp4", "out.mp4"]


def test_hard_cut_has_no_fades():
    plan = resolve_plan("Documentary Style")
    assert plan.transition is Transition.CUT
    graph = build_filter_graph(plan, has_audio=True, duration=60.0)
    assert not any(f.startswith("fade") for f in graph.video_filters)
    assert not any(f.startswith("afade") for f in graph.audio_filters)


def test_free_text_preferences_never_reach_arguments():
    prefs = StylePreferences.from_dict(
        {"editingStyle": "Cinematic", "specialRequests": "'; rm -rf / #", "videoName": "evil$(name)"}
    )
    args = build_filter_graph(prefs.plan(), has_audio=True, duration=20.0).to_args("in.mp4", "out.mp4")
    joined = " ".join(args)
    assert "rm -rf" not in joined
    assert "evil" not in joined


def test_music_bed_uses_filter_complex(tmp_path):
    (tmp_path / "upbeat_modern.mp3").write_bytes(b"ID3")
    plan = resolve_plan("Minimal & Clean", "Young Adults (18-30)")
    bed = music_bed_for(plan, tmp_path)
    assert bed == tmp_path / "upbeat_modern.mp3"

    args = build_filter_graph(plan, has_audio=True, duration=20.0, music_path=bed).to_args("in.mp4", "out.mp4")
    assert "-filter_complex" in args
    assert _flag(args, "-stream_loop") == "-1"
    assert "amix=inputs=2" in _flag(args, "-filter_complex")
    assert "-vf" not in args


def test_music_bed_missing_file_or_category():
    assert music_bed_for(DEFAULT_PLAN, "/nonexistent") is None
    assert music_bed_for(resolve_plan(target_audience="Families"), "") is None


def test_effect_outside_catalog_is_rejected():
    plan = EncodingPlan(
        quality=QualityTier.MEDIUM,
        effects=("glitter",),
        transition=Transition.FADE,
        music=None,
        pacing=Pacing.MEDIUM,
    )
    with pytest.raises(InvalidPlanError):
        build_filter_graph(plan, has_audio=False)
