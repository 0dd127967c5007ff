import pytest

from changelog_harvester.config import load_settings
from changelog_harvester.errors import ConfigurationError

REQUIRED = ("SLACK_BOT_TOKEN", "SLACK_CHANNEL_ID", "LLM_API_KEY")


@pytest.fixture
def clean_env(monkeypatch):
    for key in REQUIRED + ("SLACK_NOTIFY_CHANNEL_ID",):
        monkeypatch.delenv(key, raising=False)


def test_missing_keys_reported_together(clean_env):
    """
    WHY: An operator fixing config one key per restart is painful.
    HOW: Build settings with no required key set.
    EXPECTED: A single ConfigurationError listing all three keys.
    """
    with pytest.raises(ConfigurationError) as exc:
        load_settings(_env_file=None)
    assert sorted(exc.value.missing) == sorted(REQUIRED)
    for key in REQUIRED:
        assert key in str(exc.value)


def test_notify_channel_must_differ(clean_env):
    """
    WHY: Announcing into the ingest channel would feed our own posts back in.
    HOW: Configure the same id for both channels.
    EXPECTED: ConfigurationError.
    """
    with pytest.raises(ConfigurationError) as exc:
        load_settings(
            _env_file=None,
            SLACK_BOT_TOKEN="xoxb",
            SLACK_CHANNEL_ID="C1",
            LLM_API_KEY="k",
            SLACK_NOTIFY_CHANNEL_ID="C1",
        )
    assert "SLACK_NOTIFY_CHANNEL_ID" in str(exc.value)


def test_denylist_parsing(settings):
    """CSV denylists split, trim and (for names) lowercase."""
    s = settings.model_copy(update={
        "EXCLUDED_SENDER_IDS": " U1, B2 ,,",
        "EXCLUDED_SENDER_NAMES": "Release Bot,  Deploy NOTIFIER",
    })
    assert s.excluded_sender_ids == ["U1", "B2"]
    assert s.excluded_sender_names == ["release bot", "deploy notifier"]
    assert s.excluded_app_ids == ["A_RELAY"]


def test_langfuse_enabled_needs_both_keys(settings):
    assert settings.langfuse_enabled is False
    assert settings.model_copy(update={"LANGFUSE_PUBLIC_KEY": "pk"}).langfuse_enabled is False
    assert settings.model_copy(update={"LANGFUSE_PUBLIC_KEY": "pk", "LANGFUSE_SECRET_KEY": "sk"}).langfuse_enabled
