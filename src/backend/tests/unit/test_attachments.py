"""
Unit tests for attachment reconciliation.

Tests:
- Plan partitioning (create / keep / replace / delete)
- Foreign and duplicate ids
- Row mutation from a plan and replanning its output
- Blob batch execution and failure reporting
"""

from dataclasses import dataclass
from itertools import count

import pytest

from core.forms import FilePayload
from db.models import Attachment
from services.attachments import (
    AttachmentFieldSet,
    AttachmentReconciler,
    apply_plan_to_rows,
    plan_attachments,
)


@dataclass
class Stored:
    id: str
    file_name: str
    extension: str


def _ids():
    counter = count(1)
    return lambda: f"gen{next(counter)}"


def _file(name: str = "photo.JPG", data: bytes = b"img") -> FilePayload:
    return FilePayload(filename=name, content_type="image/jpeg", data=data)


class TestPlanAttachments:
    """Tests for plan_attachments."""

    def test_missing_entries_are_deleted(self):
        existing = [Stored("a", "fa", "png"), Stored("b", "fb", "pdf")]

        plan = plan_attachments(existing, [AttachmentFieldSet(id="a")], _ids())

        assert [d.id for d in plan.to_delete] == ["b"]
        assert plan.to_delete[0].file_name == "fb"
        assert [u.id for u in plan.to_update] == ["a"]
        assert plan.to_create == []

    def test_kept_entry_updates_alt_text(self):
        plan = plan_attachments(
            [Stored("a", "fa", "png")],
            [AttachmentFieldSet(id="a", alt_text="Side view")],
            _ids(),
        )

        update = plan.to_update[0]
        assert update.alt_text == "Side view"
        assert update.is_replace is False
        assert plan.replacements == []

    def test_file_with_id_replaces_blob_under_new_name(self):
        plan = plan_attachments(
            [Stored("a", "fa", "png")],
            [AttachmentFieldSet(id="a", file=_file())],
            _ids(),
        )

        update = plan.to_update[0]
        assert update.is_replace
        assert update.file_name == "gen1"
        assert update.file_name != "fa"
        assert update.previous_file_name == "fa"
        assert update.previous_extension == "png"
        assert plan.to_delete == []

    def test_file_without_id_creates(self):
        plan = plan_attachments([], [AttachmentFieldSet(file=_file("scan.pdf"))], _ids())

        create = plan.to_create[0]
        assert create.id == "gen1"
        assert create.file_name == "gen2"
        assert create.alt_text == "scan.pdf"

    def test_empty_entry_is_dropped(self):
        plan = plan_attachments([], [AttachmentFieldSet(alt_text="nothing")], _ids())

        assert plan.to_create == []
        assert plan.to_update == []

    def test_foreign_id_is_ignored(self):
        plan = plan_attachments(
            [Stored("a", "fa", "png")],
            [AttachmentFieldSet(id="other", file=_file())],
            _ids(),
        )

        assert plan.to_update == []
        assert plan.to_create == []
        assert [d.id for d in plan.to_delete] == ["a"]

    def test_duplicate_id_is_kept_once(self):
        plan = plan_attachments(
            [Stored("a", "fa", "png")],
            [AttachmentFieldSet(id="a"), AttachmentFieldSet(id="a", alt_text="again")],
            _ids(),
        )

        assert len(plan.to_update) == 1

    def test_partitions_are_disjoint(self):
        existing = [Stored(x, f"f{x}", "png") for x in "abcd"]
        submitted = [
            AttachmentFieldSet(id="a"),
            AttachmentFieldSet(id="b", file=_file()),
            AttachmentFieldSet(file=_file()),
        ]

        plan = plan_attachments(existing, submitted, _ids())

        deleted = {d.id for d in plan.to_delete}
        updated = {u.id for u in plan.to_update}
        created = {c.id for c in plan.to_create}
        assert deleted == {"c", "d"}
        assert updated == {"a", "b"}
        assert not (deleted & updated) and not (created & (deleted | updated))
        assert sorted(plan.kept_ids) == sorted(updated | created)


class TestApplyPlanToRows:
    """Tests for apply_plan_to_rows."""

    def test_rows_follow_plan(self):
        rows = [
            Attachment(id="a", file_name="fa", extension="png", type="incidents"),
            Attachment(id="b", file_name="fb", extension="png", type="incidents"),
        ]
        plan = plan_attachments(
            rows,
            [
                AttachmentFieldSet(id="a", file=_file("new.pdf"), alt_text="Report"),
                AttachmentFieldSet(file=_file("more.png")),
            ],
            _ids(),
        )

        apply_plan_to_rows(rows, plan, "incidents")

        assert [r.id for r in rows] == ["a", "gen2"]
        replaced = rows[0]
        assert replaced.file_name == "gen1"
        assert replaced.extension == "pdf"
        assert replaced.alt_text == "Report"
        assert rows[1].type == "incidents"
        assert rows[1].extension == "png"

    def test_replanning_own_output_is_a_no_op(self):
        rows = [Attachment(id="a", file_name="fa", extension="png", type="incidents")]
        plan = plan_attachments(
            rows,
            [AttachmentFieldSet(id="a", file=_file()), AttachmentFieldSet(file=_file("b.png"))],
            _ids(),
        )
        apply_plan_to_rows(rows, plan, "incidents")

        again = plan_attachments(
            rows, [AttachmentFieldSet(id=r.id, alt_text=r.alt_text) for r in rows], _ids()
        )

        assert again.to_delete == []
        assert again.to_create == []
        assert again.replacements == []


class RecordingStore:
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = []

    async def upload_file(self, container, directory, file_name, extension, content, content_type="x"):
        self.calls.append(("upload", container, directory, file_name, extension))
        if self.fail_on == "upload":
            raise RuntimeError("upload failed")
        return f"{container}/{directory}/{file_name}.{extension}"

    async def delete_file(self, container, directory, file_name, extension):
        self.calls.append(("delete", container, directory, file_name, extension))
        return True

    async def delete_directory(self, container, directory):
        self.calls.append(("delete_directory", container, directory))
        return 3

    async def download_file(self, container, directory, file_name, extension):
        return None


class TestAttachmentReconciler:
    """Tests for the blob side of reconciliation."""

    @pytest.mark.asyncio
    async def test_blob_batch_covers_plan(self):
        store = RecordingStore()
        reconciler = AttachmentReconciler("incidents", lambda owner: owner, store)
        plan = plan_attachments(
            [Stored("a", "fa", "png"), Stored("b", "fb", "pdf")],
            [AttachmentFieldSet(id="a", file=_file()), AttachmentFieldSet(file=_file("x.txt"))],
            _ids(),
        )

        await reconciler.apply_blobs(plan, "INC-000001")

        ops = sorted((c[0], c[3]) for c in store.calls)
        assert ops == [
            ("delete", "fa"),
            ("delete", "fb"),
            ("upload", "gen1"),
            ("upload", "gen3"),
        ]
        assert all(c[1] == "incidents" and c[2] == "INC-000001" for c in store.calls)

    @pytest.mark.asyncio
    async def test_incident_edit_keeps_one_drops_one_adds_one(self):
        store = RecordingStore()
        reconciler = AttachmentReconciler("incidents", lambda owner: owner, store)
        rows = [
            Attachment(id="a1", file_name="f1", extension="png", alt_text="Front", type="incidents"),
            Attachment(id="a2", file_name="f2", extension="png", alt_text="Back", type="incidents"),
        ]
        plan = plan_attachments(
            rows,
            [AttachmentFieldSet(id="a1", alt_text="Front"), AttachmentFieldSet(file=_file("photo.png"))],
            _ids(),
        )

        apply_plan_to_rows(rows, plan, "incidents")
        await reconciler.apply_blobs(plan, "INC-000001")

        assert [r.id for r in rows] == ["a1", "gen1"]
        assert (rows[0].file_name, rows[0].alt_text) == ("f1", "Front")
        assert sorted(c[0] for c in store.calls) == ["delete", "upload"]
        assert ("delete", "incidents", "INC-000001", "f2", "png") in store.calls
        assert ("upload", "incidents", "INC-000001", "gen2", "png") in store.calls

    @pytest.mark.asyncio
    async def test_failure_raised_after_all_operations_ran(self):
        store = RecordingStore(fail_on="upload")
        reconciler = AttachmentReconciler("incidents", lambda owner: owner, store)
        plan = plan_attachments(
            [Stored("b", "fb", "pdf")], [AttachmentFieldSet(file=_file())], _ids()
        )

        with pytest.raises(RuntimeError, match="upload failed"):
            await reconciler.apply_blobs(plan, "INC-000002")

        assert ("delete", "incidents", "INC-000002", "fb", "pdf") in store.calls

    @pytest.mark.asyncio
    async def test_save_commits_before_blobs(self, db_session):
        store = RecordingStore()
        reconciler = AttachmentReconciler("incidents", lambda owner: owner, store)
        order = []

        async def upsert(plan):
            order.append("rows")
            return "INC-000003"

        original_commit = db_session.commit

        async def commit():
            order.append("commit")
            await original_commit()

        db_session.commit = commit
        owner = await reconciler.save(db_session, [], [AttachmentFieldSet(file=_file())], upsert)

        assert owner == "INC-000003"
        assert order == ["rows", "commit"]
        assert store.calls[0][:3] == ("upload", "incidents", "INC-000003")

    @pytest.mark.asyncio
    async def test_delete_directory(self):
        store = RecordingStore()
        reconciler = AttachmentReconciler("id-requests", lambda owner: owner, store)

        removed = await reconciler.delete_directory("IDR-000001")

        assert removed == 3
        assert store.calls == [("delete_directory", "id-requests", "IDR-000001")]
