"""Revision numbering and description formatting"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from incidentflow.domain.enums import RevisionActionType
from incidentflow.domain.models import FieldChange
from incidentflow.engine.revision_writer import RevisionWriter, truncate

from ...fakes import FakeRevisionRepository


def _writer():
    repo = FakeRevisionRepository()
    return RevisionWriter(repo, clock=lambda: datetime(2026, 1, 5, tzinfo=timezone.utc)), repo


def test_numbers_strictly_increase_under_concurrency():
    writer, repo = _writer()

    def write(i):
        writer.record("INC-1", RevisionActionType.FIELD_CHANGE, f"edit {i}", actor_id="USR-1")

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(write, range(200)))

    numbers = sorted(r.revision_number for r in repo.revisions)
    assert numbers == list(range(1, 201))


def test_numbers_are_per_incident():
    writer, _ = _writer()
    writer.record("INC-1", RevisionActionType.CREATED, "a")
    writer.record("INC-1", RevisionActionType.CREATED, "b")
    other = writer.record("INC-2", RevisionActionType.CREATED, "c")
    assert other.revision_number == 1



def test_failed_insert_surfaces_and_consumes_number():
    writer, repo = _writer()
    writer.record("INC-1", RevisionActionType.CREATED, "a")

    repo.fail_writes = True
    with pytest.raises(RuntimeError):
        writer.record("INC-1", RevisionActionType.FIELD_CHANGE, "b")

    repo.fail_writes = False
    after = writer.record("INC-1", RevisionActionType.FIELD_CHANGE, "c")
    # Reserved number is not reused; numbers stay unique and ordered
    assert after.revision_number == 3
    assert [r.revision_number for r in repo.revisions] == [1, 3]

def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("x" * 12, 10) == "x" * 10 + "..."


def test_comment_added_description_is_truncated():
    writer, _ = _writer()
    revision = writer.write_comment_added("INC-1", "Ada Tester", "y" * 80, "USR-1")
    assert revision.action_description == "Comment added by Ada Tester - " + "y" * 50 + "..."


def test_field_changes_summary():
    writer, _ = _writer()
    changes = [
        FieldChange(field_name="title", field_label="Title", old_value="a", new_value="b"),
        FieldChange(field_name="priority", field_label="Priority", old_value="3", new_value="1"),
        FieldChange(field_name="severity", field_label="Severity", old_value="3", new_value="2"),
    ]
    revision = writer.write_field_changes(
        "INC-1", changes, ["Title changed from a to b", "Priority changed", "Severity changed"], "USR-1"
    )
    assert revision.action_description == "Title changed from a to b and 2 more changes"
    assert len(revision.changes) == 3


def test_no_field_changes_writes_nothing():
    writer, repo = _writer()
    assert writer.write_field_changes("INC-1", [], [], "USR-1") is None
    assert repo.revisions == []


def test_assignee_change_description():
    writer, _ = _writer()
    revision = writer.write_assignee_changed("INC-1", None, "Unassigned", "USR-B", "Bea Tester", "USR-1")
    assert revision.action_description == "AssignedTo changed from Unassigned to Bea Tester"
    assert revision.changes[0].new_value == "USR-B"


def test_list_revisions_filters():
    repo = FakeRevisionRepository()
    clock_values = iter(datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(days=d) for d in range(3))
    writer = RevisionWriter(repo, clock=lambda: next(clock_values))
    writer.record("INC-1", RevisionActionType.CREATED, "created", actor_id="USR-1")
    writer.record("INC-1", RevisionActionType.COMMENT_ADDED, "comment", actor_id="USR-2")
    writer.record("INC-1", RevisionActionType.COMMENT_ADDED, "comment", actor_id="USR-1")

    by_type = writer.list_revisions("INC-1", action_type=RevisionActionType.COMMENT_ADDED)
    assert [r.revision_number for r in by_type] == [3, 2]

    by_actor = writer.list_revisions("INC-1", performed_by_id="USR-1")
    assert [r.revision_number for r in by_actor] == [3, 1]

    ranged = writer.list_revisions("INC-1", start=datetime(2026, 1, 2, tzinfo=timezone.utc))
    assert [r.revision_number for r in ranged] == [3, 2]
