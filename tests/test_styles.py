import pytest

from videos.jobs import StylePreferences
from videos.styles import (
    DEFAULT_PLAN,
    PORTRAIT_1080P,
    DurationBucket,
    EditingStyle,
    Effect,
    MusicCategory,
    Pacing,
    QualityTier,
    TargetAudience,
    Transition,
    parse_duration,
    parse_style,
    resolve_plan,
)


def test_missing_answers_give_default_plan():
    assert resolve_plan() == DEFAULT_PLAN
    assert resolve_plan(None, None, None) == DEFAULT_PLAN


@pytest.mark.parametrize("value", ["", "   ", "Vaporwave", 42, {"style": "Cinematic"}])
def test_unrecognised_style_never_raises(value):
    plan = resolve_plan(editing_style=value)
    assert plan.quality is DEFAULT_PLAN.quality
    assert plan.effects == DEFAULT_PLAN.effects
    assert plan.transition is DEFAULT_PLAN.transition


def test_cinematic_young_adults_short():
    plan = resolve_plan("Cinematic", "Young Adults (18-30)", "15-30 seconds")

    assert plan.quality is QualityTier.ULTRA
    assert plan.effects == (Effect.COLOR_GRADE, Effect.VIGNETTE, Effect.GRAIN)
    assert plan.transition is Transition.CINEMATIC_WIPE
    assert plan.music is MusicCategory.UPBEAT_MODERN
    assert plan.pacing is Pacing.VERY_FAST
    assert plan.speed == 1.5
    assert plan.is_cinematic


def test_fields_fall_back_independently():
    plan = resolve_plan("no such style", "Families", "bogus")
    assert plan.quality is DEFAULT_PLAN.quality
    assert plan.music is MusicCategory.FAMILY_FRIENDLY
    assert plan.pacing is DEFAULT_PLAN.pacing


def test_every_style_resolves_to_its_own_plan():
    for style in EditingStyle:
        plan = resolve_plan(style.value)
        assert plan.style is style
        assert list(plan.effects) == sorted(plan.effects, key=list(Effect).index)


def test_every_audience_and_duration_is_mapped():
    for audience in TargetAudience:
        assert resolve_plan(target_audience=audience.value).music is not None
    for bucket in DurationBucket:
        assert resolve_plan(duration=bucket.value).pacing is not None


def test_labels_names_and_aliases_are_accepted():
    assert parse_style("CINEMATIC") is EditingStyle.CINEMATIC
    assert parse_style("social media ready") is EditingStyle.SOCIAL_MEDIA
    assert parse_style("social") is EditingStyle.SOCIAL_MEDIA
    assert parse_duration("2-5 minutes") is DurationBucket.MINUTES_2_5
    assert parse_duration("original") is DurationBucket.KEEP_ORIGINAL


def test_social_media_is_portrait():
    assert resolve_plan("Social Media Ready").resolution == PORTRAIT_1080P


def test_preferences_accept_wizard_keys():
    prefs = StylePreferences.from_dict(
        {
            "editingStyle": "Minimal & Clean",
            "targetAudience": "Professionals",
            "duration": "1-2 minutes",
            "specialRequests": "make it pop",
            "storyMode": True,
            "unknownKey": "ignored",
        }
    )
    assert prefs.story_mode is True
    assert prefs.special_requests == "make it pop"
    plan = prefs.plan()
    assert plan.style is EditingStyle.MINIMAL
    assert plan.music is MusicCategory.CORPORATE_AMBIENT
    assert plan.pacing is Pacing.MEDIUM_FAST
