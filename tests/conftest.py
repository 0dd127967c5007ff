import pytest
from pathlib import Path
from unittest.mock import MagicMock

import yaml

from changelog_harvester.config import load_settings
from changelog_harvester.ingest.dedup import EditDetector
from changelog_harvester.ingest.source import SourceAdapter
from changelog_harvester.ingest.threads import ThreadHydrator
from changelog_harvester.llm.prompts import PromptStore, PromptTemplate
from changelog_harvester.notify.slack_notifier import SlackNotifier
from changelog_harvester.observability.tracing import LangfuseTracer
from changelog_harvester.pipeline.engine import ExtractionEngine, PromptPair
from changelog_harvester.pipeline.run import Pipeline
from changelog_harvester.slack.client import SlackClientWrapper
from changelog_harvester.store.db import init_db
from changelog_harvester.store.repo import ReleaseRepo

CHANNEL_ID = "C_TEST"
NOTIFY_CHANNEL_ID = "C_NOTIFY"


@pytest.fixture
def settings(tmp_path):
    """
    Settings built from explicit values only; a developer's .env never leaks in.
    Tests that need other values call load_settings() themselves.
    """
    return load_settings(
        _env_file=None,
        SLACK_BOT_TOKEN="xoxb-test",
        SLACK_CHANNEL_ID=CHANNEL_ID,
        SLACK_NOTIFY_CHANNEL_ID=NOTIFY_CHANNEL_ID,
        SLACK_SIGNING_SECRET="test-signing-secret",
        LLM_API_KEY="sk-test",
        LANGFUSE_PUBLIC_KEY="",
        LANGFUSE_SECRET_KEY="",
        DB_PATH=str(tmp_path / "test_releases.db"),
        PROMPTS_DIR=str(tmp_path / "prompts"),
        EXCLUDED_SENDER_IDS="U_RELAY_BOT",
        EXCLUDED_APP_IDS="A_RELAY",
        EXCLUDED_SENDER_NAMES="Changelog Bot",
        APP_URL="https://changelog.test",
        HYDRATION_WORKERS=2,
    )


@pytest.fixture
def test_db(settings):
    """Creates a temporary database for testing and initializes the schema."""
    init_db(settings.DB_PATH)
    yield settings


@pytest.fixture
def repo(test_db):
    return ReleaseRepo(test_db.DB_PATH)


@pytest.fixture
def prompt_files(settings):
    """Local YAML prompts, the fallback used when Langfuse is not configured."""
    prompts_dir = Path(settings.PROMPTS_DIR)
    prompts_dir.mkdir(parents=True, exist_ok=True)
    for name, version in (
        (settings.EXTRACTION_PROMPT_NAME, "7"),
        (settings.CLASSIFICATION_PROMPT_NAME, "3"),
    ):
        with open(prompts_dir / f"{name}.yaml", "w") as f:
            yaml.safe_dump({"content": f"Instructions for {name}.", "version": version}, f)
    return prompts_dir


@pytest.fixture
def prompt_pair():
    return PromptPair(
        extraction=PromptTemplate(name="release-extraction", text="Extract releases.", version="7"),
        classification=PromptTemplate(name="release-classification", text="Pick releases.", version="3"),
    )


class FakeLLM:
    """
    Stands in for LLMClient.
    `classify` / `extract` are a string, an exception to raise, or a callable
    taking the prompt and returning a string (or raising).
    """

    def __init__(self, classify="[]", extract="[]"):
        self.classify = classify
        self.extract = extract
        self.calls = []

    def complete(self, prompt, max_tokens, name="completion"):
        self.calls.append((name, prompt))
        handler = self.classify if name == "classify" else self.extract
        if isinstance(handler, Exception):
            raise handler
        if callable(handler):
            return handler(prompt)
        return handler

    def calls_named(self, name):
        return [prompt for call_name, prompt in self.calls if call_name == name]


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def raw_message():
    """Builder for Slack API message dicts."""
    def build(ts, text="", **extra):
        message = {"type": "message", "ts": ts, "text": text, "user": "U_ALICE"}
        message.update(extra)
        return message
    return build


class FakeSlack:
    """
    Channel double: `history` is the list returned by conversations.history,
    `threads` maps thread ts -> messages returned by conversations.replies.
    """

    def __init__(self):
        self.history = []
        self.threads = {}
        self.posted = []
        self.history_error = None

    def fetch_history(self, channel_id, window_params=None):
        if self.history_error:
            raise self.history_error
        return list(self.history)

    def fetch_thread(self, channel_id, thread_ts):
        return list(self.threads.get(thread_ts, []))

    def get_bot_name(self, bot_id):
        return ""

    def post_payload(self, payload):
        self.posted.append(payload)
        return {"ok": True}


@pytest.fixture
def fake_slack():
    return FakeSlack()


@pytest.fixture
def make_pipeline(test_db, prompt_files, fake_slack, fake_llm):
    """Wires a real Pipeline around the fake Slack channel and fake LLM."""
    def build(llm=None, slack=None, settings=None):
        settings = settings or test_db
        slack = slack or fake_slack
        repo = ReleaseRepo(settings.DB_PATH)
        source = SourceAdapter(settings, slack)
        tracer = LangfuseTracer()
        return Pipeline(
            settings=settings,
            source=source,
            hydrator=ThreadHydrator(source, max_workers=2),
            detector=EditDetector(repo, max_workers=2),
            engine=ExtractionEngine(settings, llm or fake_llm, PromptStore(settings), tracer),
            repo=repo,
            notifier=SlackNotifier(settings, slack),
            tracer=tracer,
        )
    return build


@pytest.fixture
def mock_web_client():
    """A slack_sdk WebClient double for SlackClientWrapper tests."""
    return MagicMock()


@pytest.fixture
def slack_wrapper(mock_web_client):
    return SlackClientWrapper(token="xoxb-test", client=mock_web_client)
