from unittest.mock import patch

from changelog_harvester.ingest.dedup import EditDetector, partition_messages
from changelog_harvester.schemas.messages import ChannelMessage
from changelog_harvester.schemas.releases import ExtractedRelease


def _msg(ts, edited=None):
    return ChannelMessage(id=ts, channel_id="C_TEST", text="Shipped", edited_version=edited)


def _release(message_id, edited=None, title="Dark Mode"):
    return ExtractedRelease(
        source_message_id=message_id,
        source_channel_id="C_TEST",
        source_edited_version=edited,
        source_timestamp="2024-06-01T12:00:00+00:00",
        extraction_prompt_version="7",
        date="2024-06-01",
        title=title,
    )


def test_partition_three_ways():
    """
    WHY: Only new and edited messages may reach the LLM.
    HOW: Compare messages against a stored edit-version map, including None == None.
    EXPECTED: new / unchanged / edited are disjoint and complete.
    """
    existing = {"1.0": None, "2.0": "v1", "3.0": "v1"}
    partition = partition_messages(
        [_msg("1.0"), _msg("2.0", "v1"), _msg("3.0", "v2"), _msg("4.0")],
        existing,
    )
    assert [m.id for m in partition.unchanged] == ["1.0", "2.0"]
    assert [m.id for m in partition.edited] == ["3.0"]
    assert [m.id for m in partition.new] == ["4.0"]


def test_first_edit_counts_as_edited():
    partition = partition_messages([_msg("1.0", "v1")], {"1.0": None})
    assert [m.id for m in partition.edited] == ["1.0"]


def test_detect_is_read_only(repo):
    repo.insert_release(_release("1.0", "v1"))
    detector = EditDetector(repo)

    partition = detector.detect([_msg("1.0", "v2")], "C_TEST")

    assert [m.id for m in partition.edited] == ["1.0"]
    assert len(repo.get_releases_for_message("1.0")) == 1


def test_apply_edits_deletes_then_requeries_once(repo):
    """
    WHY: Re-extraction must replace, never accumulate.
    HOW: Two edited messages with stored releases, one new message; count store reads.
    EXPECTED: Old rows gone, all three returned for extraction, one requery after the batch delete.
    """
    repo.insert_release(_release("1.0", "v1"))
    repo.insert_release(_release("1.0", "v1", title="Dark Mode on iOS"))
    repo.insert_release(_release("2.0", None))
    detector = EditDetector(repo, max_workers=2)
    partition = detector.detect([_msg("1.0", "v2"), _msg("2.0", "v1"), _msg("3.0")], "C_TEST")

    with patch.object(repo, "get_existing_edit_versions", wraps=repo.get_existing_edit_versions) as reads:
        to_process = detector.apply_edits(partition, "C_TEST")

    assert reads.call_count == 1
    assert sorted(m.id for m in to_process) == ["1.0", "2.0", "3.0"]
    assert repo.get_releases_for_message("1.0") == []
    assert repo.get_releases_for_message("2.0") == []


def test_apply_edits_skips_message_whose_delete_failed(repo):
    repo.insert_release(_release("1.0", "v1"))
    detector = EditDetector(repo)
    partition = detector.detect([_msg("1.0", "v2")], "C_TEST")

    with patch.object(repo, "delete_releases_for_message", return_value=0):
        assert detector.apply_edits(partition, "C_TEST") == []
    assert [m.id for m in partition.held_back] == ["1.0"]


def test_apply_edits_without_edits_does_not_touch_store(repo):
    detector = EditDetector(repo)
    partition = detector.detect([_msg("9.0")], "C_TEST")

    with patch.object(repo, "get_existing_edit_versions") as reads:
        to_process = detector.apply_edits(partition, "C_TEST")

    reads.assert_not_called()
    assert [m.id for m in to_process] == ["9.0"]
