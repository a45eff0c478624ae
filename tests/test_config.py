import pytest
from pydantic import ValidationError

from nido.config import Settings
from nido.learning import BanditConfig


def test_defaults_work_without_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    settings = Settings(_env_file=None)

    assert settings.supabase_url is None
    assert settings.channel_weights == {"structured": 0.5, "keyword": 0.2, "semantic": 0.3}
    assert settings.learner_lookback_days == 30


def test_env_overrides_bandit_thresholds(monkeypatch):
    monkeypatch.setenv("BANDIT_HIGH_INTENSITY_THRESHOLD", "0.8")
    monkeypatch.setenv("BANDIT_MIN_TRIAL_INCREMENT", "0.1")

    config = BanditConfig.from_settings(Settings(_env_file=None))

    assert config.high_intensity_threshold == 0.8
    assert config.min_trial_increment == 0.1
    assert config.low_intensity_threshold == 0.33


def test_out_of_range_values_are_rejected():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, channel_weight_keyword=1.5)
    with pytest.raises(ValidationError):
        Settings(_env_file=None, channel_timeout_seconds=0)


def test_channel_weights_summing_over_one_are_rejected_at_startup(monkeypatch):
    monkeypatch.setenv("CHANNEL_WEIGHT_STRUCTURED", "0.7")
    monkeypatch.setenv("CHANNEL_WEIGHT_SEMANTIC", "0.5")

    with pytest.raises(ValidationError, match="pesos de canal"):
        Settings(_env_file=None)


def test_channel_weights_may_sum_below_one():
    settings = Settings(_env_file=None, channel_weight_keyword=0.0)

    assert sum(settings.channel_weights.values()) == pytest.approx(0.8)
