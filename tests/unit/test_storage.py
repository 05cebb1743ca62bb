"""Unit tests for current-plan persistence."""

import json
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import patch

from workplan.errors import StorageError
from workplan.models import AcceptanceCriterion, CriterionId, PlanId, PrTask, TaskId, WorkPlan
from workplan.status import Abandoned, Blocked, Refined
from workplan.storage import PlanStore, deserialize_dates, serialize_dates

T0 = datetime(2024, 3, 4, 5, 6, 7, 890000, tzinfo=timezone.utc)


def sample_plan():
    return WorkPlan(
        id=PlanId("PLAN-ABCD1234"),
        name="Auth",
        feature_branch="feature/auth",
        prd_path="docs/prd.md",
        design_doc_path="docs/design.md",
        origin_worktree_path="/src/auth",
        description="Authentication",
        tasks=(
            PrTask(
                id=TaskId("T1"),
                title="API",
                description="Login endpoint",
                branch="api",
                status=Refined(),
                acceptance_criteria=(
                    AcceptanceCriterion(
                        id=CriterionId("AC-1"),
                        scenario="Login",
                        given=("a user",),
                        when=("they log in",),
                        then=("a token is issued",),
                        is_completed=True,
                        created_at=T0,
                    ),
                ),
                definition_of_ready=("API contract agreed",),
                assigned_worktree="wt-api",
                updated_at=T0,
            ),
            PrTask(
                id=TaskId("T2"),
                title="UI",
                description="",
                branch="ui",
                status=Blocked(reason="waiting on API", since=T0),
                dependencies=(TaskId("T1"),),
            ),
            PrTask(
                id=TaskId("T3"),
                title="Legacy",
                description="",
                branch="legacy",
                status=Abandoned(reason="descoped", at=T0),
            ),
        ),
        created_at=T0,
        updated_at=T0,
    )


class TestDateSerialization:
    """Test cases for recursive timestamp conversion."""

    def test_serialize_nested(self):
        data = serialize_dates({"a": [T0, {"b": T0}], "c": 1})

        assert data == {"a": ["2024-03-04T05:06:07.890Z", {"b": "2024-03-04T05:06:07.890Z"}], "c": 1}

    def test_deserialize_only_converts_date_fields(self):
        data = deserialize_dates({"created_at": "2024-03-04T05:06:07.890Z", "updated_at": "2024-03-04"})

        assert data["created_at"] == T0
        assert data["updated_at"] == "2024-03-04"

    def test_nested_status_timestamps(self):
        data = deserialize_dates({"tasks": [{"status": {"type": "Blocked", "since": "2024-03-04T05:06:07.890Z"}}]})

        assert data["tasks"][0]["status"]["since"] == T0

    def test_free_text_shaped_like_timestamp_stays_text(self):
        """Titles, reasons and list entries are never revived."""
        data = deserialize_dates({"title": "2020-01-01T00:00:00.000Z", "given": ["2020-01-01T00:00:00.000Z"]})

        assert data == {"title": "2020-01-01T00:00:00.000Z", "given": ["2020-01-01T00:00:00.000Z"]}


class TestPlanStore:
    """Test cases for PlanStore."""

    def test_load_without_plan(self, tmp_path):
        result = PlanStore(tmp_path / "plans").load()

        assert result.is_ok()
        assert result.unwrap() is None

    def test_round_trip_with_timestamp_statuses(self, tmp_path):
        """Blocked and Abandoned timestamps survive a save/load cycle."""
        store = PlanStore(tmp_path / "plans")
        plan = sample_plan()

        assert store.save(plan).unwrap() is plan
        loaded = store.load().unwrap()

        assert loaded == plan
        assert loaded.tasks[1].status.since == T0

    def test_saved_document_shape(self, tmp_path):
        store = PlanStore(tmp_path)
        store.save(sample_plan())

        document = json.loads(store.plan_path.read_text(encoding="utf-8"))

        assert store.plan_path.name == "current_plan.json"
        assert document["created_at"] == "2024-03-04T05:06:07.890Z"
        assert document["tasks"][1]["status"] == {
            "type": "Blocked",
            "reason": "waiting on API",
            "since": "2024-03-04T05:06:07.890Z",
        }
        assert not store.temp_path.exists()

    def test_save_overwrites_previous_plan(self, tmp_path):
        store = PlanStore(tmp_path)
        store.save(sample_plan())
        renamed = WorkPlan(
            id=PlanId("PLAN-2"),
            name="Billing",
            feature_branch="feature/billing",
            prd_path="",
            design_doc_path="",
            created_at=T0,
            updated_at=T0,
        )

        store.save(renamed)

        assert store.load().unwrap().name == "Billing"

    def test_corrupt_document(self, tmp_path):
        store = PlanStore(tmp_path)
        store.plan_path.write_text("{not json", encoding="utf-8")

        error = store.load().unwrap_err()

        assert isinstance(error, StorageError)
        assert error.message.startswith("Failed to load current plan")

    def test_document_not_utf8(self, tmp_path):
        store = PlanStore(tmp_path)
        store.plan_path.write_bytes(b'{"id": "\xff\xfe"}')

        error = store.load().unwrap_err()

        assert isinstance(error, StorageError)
        assert error.message.startswith("Failed to load current plan")

    def test_status_stored_as_plain_string(self, tmp_path):
        """A status that is not an object is a storage error, not a crash."""
        store = PlanStore(tmp_path)
        store.save(sample_plan())
        document = json.loads(store.plan_path.read_text(encoding="utf-8"))
        document["tasks"][0]["status"] = "Merged"
        store.plan_path.write_text(json.dumps(document), encoding="utf-8")

        error = store.load().unwrap_err()

        assert isinstance(error, StorageError)
        assert "Expected a status object" in error.message

    def test_document_is_not_an_object(self, tmp_path):
        store = PlanStore(tmp_path)
        store.plan_path.write_text("[1, 2]", encoding="utf-8")

        assert isinstance(store.load().unwrap_err(), StorageError)

    def test_timestamp_shaped_text_survives_round_trip(self, tmp_path):
        store = PlanStore(tmp_path)
        plan = sample_plan()
        retitled = plan.with_task(replace(plan.tasks[0], title="2024-01-01T00:00:00.000Z"), at=T0)
        store.save(retitled)

        loaded = store.load().unwrap()

        assert loaded.tasks[0].title == "2024-01-01T00:00:00.000Z"
        assert loaded == retitled

    def test_document_missing_fields(self, tmp_path):
        store = PlanStore(tmp_path)
        store.plan_path.write_text(json.dumps({"id": "PLAN-1"}), encoding="utf-8")

        assert store.load().is_err()

    def test_failed_write_cleans_temp_file(self, tmp_path):
        """A failing rename reports a storage error and removes the temp file."""
        store = PlanStore(tmp_path)

        with patch("workplan.storage.os.replace", side_effect=OSError("disk full")):
            result = store.save(sample_plan())

        error = result.unwrap_err()
        assert error.details == "Failed to write plan"
        assert "disk full" in error.message
        assert not store.temp_path.exists()
        assert not store.plan_path.exists()

    def test_failed_directory_creation(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = PlanStore(blocker / "plans")

        error = store.save(sample_plan()).unwrap_err()

        assert error.details == "Failed to create storage directory"
