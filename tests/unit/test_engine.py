import json

import pytest

from changelog_harvester.errors import PromptNotFoundError
from changelog_harvester.llm.prompts import PromptStore
from changelog_harvester.pipeline.engine import ExtractionEngine
from changelog_harvester.schemas.messages import ChannelMessage, MediaFile

A = "1717243200.000100"
B = "1717243300.000100"
C = "1717243400.000100"


def _standalone(ts, text):
    return ChannelMessage(id=ts, channel_id="C_TEST", text=text)


@pytest.fixture
def engine(settings, fake_llm, prompt_files):
    return ExtractionEngine(settings, fake_llm, PromptStore(settings))


def _answer_with_title(prompt):
    # Title is the message text after the "[id] [date] " prefix
    line = prompt.rsplit("\n", 1)[-1]
    return json.dumps([{"title": line.split("] ", 2)[-1], "description": "d", "type": "New Feature"}])


def test_load_prompts_from_local_files(engine):
    prompts = engine.load_prompts()
    assert prompts.extraction.version == "7"
    assert prompts.classification.version == "3"
    assert prompts.version == "7"


def test_missing_prompt_is_fatal(settings, fake_llm):
    engine = ExtractionEngine(settings, fake_llm, PromptStore(settings))
    with pytest.raises(PromptNotFoundError):
        engine.load_prompts()


def test_partial_failure_isolation(engine, fake_llm, prompt_pair):
    """
    WHY: One bad message must never cost us the releases of the others.
    HOW: Three standalone messages; extraction of B raises.
    EXPECTED: A and C are handed to the sink, errors has exactly one entry naming B.
    """
    def extract(prompt):
        if f"[{B}]" in prompt:
            raise RuntimeError("HTTP 500 from provider")
        return _answer_with_title(prompt)
    fake_llm.extract = extract
    sunk = []

    outcome = engine.run(
        [_standalone(A, "Dark mode"), _standalone(B, "Broken"), _standalone(C, "SSO")],
        prompt_pair,
        sink=sunk.append,
    )

    assert [r.source_message_id for r in sunk] == [A, C]
    assert outcome.releases == sunk
    assert len(outcome.errors) == 1
    assert outcome.errors[0].startswith(f"Message {B}:")
    assert outcome.skipped_ids == []


def test_classification_selects_messages_of_thread(engine, fake_llm, prompt_pair):
    """
    WHY: Pass 1 exists to spend Pass 2 calls only on real announcements.
    HOW: A five-message thread; the classifier returns three ids.
    EXPECTED: Exactly three extraction calls; the other two are skipped.
    """
    ids = [A, B, C, "1717243500.000100", "1717243600.000100"]
    thread = [ChannelMessage(id=ts, channel_id="C_TEST", text=f"m{i}", thread_id=A) for i, ts in enumerate(ids)]
    fake_llm.classify = json.dumps([ids[0], ids[2], ids[4]])
    fake_llm.extract = _answer_with_title

    outcome = engine.run(thread, prompt_pair)

    assert len(fake_llm.calls_named("classify")) == 1
    assert len(fake_llm.calls_named("extract")) == 3
    assert [r.source_message_id for r in outcome.releases] == [ids[0], ids[2], ids[4]]
    assert sorted(outcome.skipped_ids) == sorted([ids[1], ids[3]])


def test_reply_gets_parent_from_context(engine, fake_llm, prompt_pair):
    parent = ChannelMessage(id=A, channel_id="C_TEST", text="Export drops rows", thread_id=A)
    reply = ChannelMessage(id=B, channel_id="C_TEST", text="Fixed it", thread_id=A)
    fake_llm.extract = _answer_with_title

    engine.run([reply], prompt_pair, context={A: parent, B: reply})

    (prompt,) = fake_llm.calls_named("extract")
    assert "Parent message (context only" in prompt
    assert "Export drops rows" in prompt


def test_release_fields_come_from_message(engine, fake_llm, prompt_pair):
    """
    WHY: The changelog date is when the team shipped, not when we happened to extract.
    HOW: Extract from a message posted 2024-06-01 with an edit marker and an image.
    EXPECTED: date, timestamp, edit marker, prompt version and media come from the message.
    """
    msg = ChannelMessage(
        id=A, channel_id="C_TEST", text="Shipped dark mode", edited_version="v1",
        files=[MediaFile(id="F1", mimetype="image/png", url_private="https://files/dark.png")],
    )
    fake_llm.extract = json.dumps([{"title": "Dark Mode", "description": "Easy on the eyes"}])

    (release,) = engine.run([msg], prompt_pair).releases

    assert release.date == "2024-06-01"
    assert release.source_timestamp.startswith("2024-06-01T12:00:00")
    assert release.source_edited_version == "v1"
    assert release.extraction_prompt_version == "7"
    assert release.media.images[0].url == "https://files/dark.png"


def test_no_candidate_counts_as_skipped(engine, fake_llm, prompt_pair):
    fake_llm.extract = "[]"
    outcome = engine.run([_standalone(A, "lunch?")], prompt_pair)
    assert outcome.releases == []
    assert outcome.skipped_ids == [A]
