"""Tests for the form builder service."""
from __future__ import annotations

import json
import tempfile
from datetime import datetime, timezone as dt_timezone
from pathlib import Path
from typing import Any, Dict, List
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import DatabaseError, connection
from django.test import SimpleTestCase, TransactionTestCase, override_settings
from django.urls import reverse
from rest_framework.test import APIClient, APITransactionTestCase

from . import artifacts, lifecycle, submissions, tasks
from .exceptions import (
    Forbidden,
    GenerationFailed,
    ModelUnresolved,
    NotFound,
    SchemaSyncFailed,
    SubmissionFailed,
    ValidationFailed,
)
from .fields import (
    decode_definition,
    derive_identifier,
    extract_field_names,
    model_name_for_table,
    snake_case,
    without_reserved,
)
from .migrator import MigrationRunner, run_pending_migrations
from .models import AppliedMigration, Form
from .registry import registry
from .schema import (
    add_missing_columns,
    build_table_model,
    create_table,
    live_columns,
    sync_table_schema,
    table_exists,
)
from .signals import form_created, form_deleted, form_updated
from .submissions import submit_form


def field(name: str, label: str = "", type_: str = "text") -> Dict[str, Any]:
    return {"name": name, "label": label or name.title(), "type": type_}


def definition(name: str, names: List[str], **extra: Any) -> Dict[str, Any]:
    return {"name": name, "form_builder_json": [field(item) for item in names], **extra}


def make_user(username: str = "owner"):
    return get_user_model().objects.create_user(username=username, password="secret-pass-123")


class GeneratedTablesMixin:
    """Points artifacts at a temp dir and drops tables a test created.

    Generated tables are unknown to Django's flush, so they are removed
    explicitly after each test.
    """

    def setUp(self) -> None:
        super().setUp()
        artifact_dir = tempfile.TemporaryDirectory()
        self.addCleanup(artifact_dir.cleanup)
        self.artifact_root = Path(artifact_dir.name)
        artifact_settings = override_settings(FORMBUILDER_ARTIFACT_ROOT=self.artifact_root)
        artifact_settings.enable()
        self.addCleanup(artifact_settings.disable)

        tables_before = set(connection.introspection.table_names())
        self.addCleanup(self._drop_new_tables, tables_before)
        registry.clear()
        self.addCleanup(registry.clear)

    def _drop_new_tables(self, tables_before) -> None:
        created = set(connection.introspection.table_names()) - tables_before
        if not created:
            return
        with connection.schema_editor() as editor:
            for table in created:
                editor.execute(f"DROP TABLE {editor.quote_name(table)}")

    def model_artifacts(self) -> List[Path]:
        return sorted((self.artifact_root / "models").glob("*.json"))

    def migration_artifacts(self) -> List[Path]:
        return sorted((self.artifact_root / "migrations").glob("*.json"))


class ExtractFieldNamesTests(SimpleTestCase):
    def test_keeps_named_fields_in_order(self) -> None:
        descriptors = [
            {"name": "first_name", "label": "First Name"},
            {"type": "header", "label": "Contact"},
            {"name": "email"},
            {"name": ""},
            "not-a-field",
            None,
            {"name": "phone", "type": "text"},
        ]
        self.assertEqual(extract_field_names(descriptors), ["first_name", "email", "phone"])

    def test_empty_input(self) -> None:
        self.assertEqual(extract_field_names([]), [])
        self.assertEqual(extract_field_names(None), [])

    def test_without_reserved_preserves_order(self) -> None:
        self.assertEqual(
            without_reserved(["id", "b", "created_at", "a", "updated_at"]),
            ["b", "a"],
        )


class NamingTests(SimpleTestCase):
    def test_identifier_is_snake_cased_and_pluralized(self) -> None:
        self.assertEqual(derive_identifier("Customer Feedback"), "customer_feedbacks")
        self.assertEqual(derive_identifier("contact"), "contacts")
        self.assertEqual(derive_identifier("  Job Application (2024) "), "job_application2024s")

    def test_snake_case_splits_capitals(self) -> None:
        self.assertEqual(snake_case("HR Survey"), "h_r_survey")
        self.assertEqual(snake_case("customer feedback"), "customer_feedback")

    def test_identifier_requires_usable_characters(self) -> None:
        with self.assertRaises(ValidationFailed):
            derive_identifier("!!!")

    def test_model_name_is_singular_pascal_case(self) -> None:
        self.assertEqual(model_name_for_table("customer_feedbacks"), "CustomerFeedback")
        self.assertEqual(model_name_for_table("contacts"), "Contact")


class DecodeDefinitionTests(SimpleTestCase):
    def test_accepts_json_text_and_lists(self) -> None:
        self.assertEqual(decode_definition('[{"name": "a"}]'), [{"name": "a"}])
        self.assertEqual(decode_definition([{"name": "a"}]), [{"name": "a"}])
        self.assertEqual(decode_definition(""), [])

    def test_rejects_malformed_definitions(self) -> None:
        with self.assertRaises(ValidationFailed):
            decode_definition("[{")
        with self.assertRaises(ValidationFailed):
            decode_definition('{"name": "a"}')


class SyncTableSchemaTests(GeneratedTablesMixin, TransactionTestCase):
    def test_create_table_has_text_columns_and_timestamps(self) -> None:
        create_table("surveys", ["a", "b", "id"])
        self.assertTrue(table_exists("surveys"))
        self.assertEqual(live_columns("surveys"), ["a", "b"])

        model = build_table_model("surveys", ["a", "b"])
        row = model.objects.create(a="one")
        self.assertIsNone(row.b)
        self.assertIsNotNone(row.created_at)

    def test_positional_rename_and_add(self) -> None:
        create_table("surveys", ["a", "b", "c"])
        build_table_model("surveys", ["a", "b", "c"]).objects.create(a="1", b="2", c="3")

        sync_table_schema("surveys", ["a", "b", "c"], ["a", "x", "c", "d"])

        self.assertEqual(live_columns("surveys"), ["a", "x", "c", "d"])
        row = build_table_model("surveys", ["a", "x", "c", "d"]).objects.get()
        self.assertEqual((row.a, row.x, row.c, row.d), ("1", "2", "3", None))

    def test_removed_fields_keep_their_columns(self) -> None:
        create_table("surveys", ["a", "b"])
        sync_table_schema("surveys", ["a", "b"], ["a"])
        self.assertEqual(live_columns("surveys"), ["a", "b"])

    def test_reserved_names_are_ignored(self) -> None:
        create_table("surveys", ["a"])
        sync_table_schema("surveys", ["id", "a"], ["id", "a", "created_at", "b"])
        self.assertEqual(live_columns("surveys"), ["a", "b"])

    def test_names_shadowing_model_attributes_are_skipped(self) -> None:
        create_table("surveys", ["a", "save"])
        self.assertEqual(live_columns("surveys"), ["a"])

        sync_table_schema("surveys", ["a", "save"], ["a", "b", "objects"])

        self.assertEqual(live_columns("surveys"), ["a", "b"])

    def test_missing_column_fails(self) -> None:
        create_table("surveys", ["a"])
        with self.assertRaises(SchemaSyncFailed):
            sync_table_schema("surveys", ["z"], ["y"])

    def test_add_missing_columns(self) -> None:
        create_table("surveys", ["a"])
        added = add_missing_columns("surveys", ["a", "b", "updated_at", "c"])
        self.assertEqual(added, ["b", "c"])
        self.assertEqual(live_columns("surveys"), ["a", "b", "c"])


class ArtifactTests(SimpleTestCase):
    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.root = Path(tmp.name)
        root_settings = override_settings(FORMBUILDER_ARTIFACT_ROOT=self.root)
        root_settings.enable()
        self.addCleanup(root_settings.disable)

    def read(self, path: Path):
        return json.loads(path.read_text(encoding="utf-8"))

    def test_migration_artifact_declares_initial_columns(self) -> None:
        path = artifacts.create_migration_artifact("customer_feedbacks", ["id", "rating", "comment"])

        self.assertEqual(path.parent, self.root / "migrations")
        self.assertRegex(path.name, r"^\d{4}_\d{2}_\d{2}_\d{6}_create_customer_feedbacks_table\.json$")
        document = self.read(path)
        self.assertEqual(document["operation"], "create_table")
        self.assertEqual(document["table"], "customer_feedbacks")
        self.assertEqual(document["columns"], ["rating", "comment"])
        self.assertEqual(document["name"], path.stem)

    def test_migration_name_collision_fails(self) -> None:
        fixed = datetime(2026, 1, 2, 3, 4, 5, tzinfo=dt_timezone.utc)
        with mock.patch("formbuilder.artifacts.timezone.now", return_value=fixed):
            artifacts.create_migration_artifact("contacts", ["email"])
            with self.assertRaises(GenerationFailed):
                artifacts.create_migration_artifact("contacts", ["email"])

    def test_create_model_artifact_skips_existing(self) -> None:
        path = artifacts.create_model_artifact("customer_feedbacks", ["rating"])
        self.assertEqual(path, self.root / "models" / "CustomerFeedback.json")

        again = artifacts.create_model_artifact("customer_feedbacks", ["rating", "comment"])

        self.assertEqual(again, path)
        self.assertEqual(
            self.read(path),
            {"model": "CustomerFeedback", "table": "customer_feedbacks", "fillable": ["rating"]},
        )

    def test_update_model_artifact_overwrites(self) -> None:
        artifacts.create_model_artifact("customer_feedbacks", ["rating"])
        path = artifacts.update_model_artifact("customer_feedbacks", ["score", "comment"])
        self.assertEqual(self.read(path)["fillable"], ["score", "comment"])
        self.assertEqual(artifacts.load_model_artifact("customer_feedbacks")["fillable"], ["score", "comment"])

    def test_load_missing_model_artifact(self) -> None:
        self.assertIsNone(artifacts.load_model_artifact("unknowns"))

    def test_write_failure_raises_generation_failed(self) -> None:
        blocker = self.root / "blocker"
        blocker.write_text("not a directory", encoding="utf-8")
        with override_settings(FORMBUILDER_ARTIFACT_ROOT=blocker):
            with self.assertRaises(GenerationFailed):
                artifacts.update_model_artifact("contacts", ["email"])


class MigrationRunnerTests(GeneratedTablesMixin, TransactionTestCase):
    def test_applies_pending_migrations_once(self) -> None:
        path = artifacts.create_migration_artifact("contacts", ["email", "phone"])
        self.assertEqual(MigrationRunner().pending(), [path])

        self.assertEqual(run_pending_migrations(), [path.stem])

        self.assertTrue(table_exists("contacts"))
        self.assertEqual(live_columns("contacts"), ["email", "phone"])
        self.assertTrue(AppliedMigration.objects.filter(name=path.stem, table_name="contacts").exists())
        self.assertEqual(MigrationRunner().pending(), [])
        self.assertEqual(run_pending_migrations(), [])

    def test_existing_table_fails_and_stays_pending(self) -> None:
        create_table("contacts", ["email"])
        path = artifacts.create_migration_artifact("contacts", ["email", "phone"])

        with self.assertRaises(GenerationFailed):
            run_pending_migrations()
        self.assertEqual(live_columns("contacts"), ["email"])
        self.assertFalse(AppliedMigration.objects.exists())
        self.assertEqual(MigrationRunner().pending(), [path])

    def test_no_directory_means_nothing_pending(self) -> None:
        self.assertEqual(MigrationRunner().pending(), [])

    def test_unsupported_document_fails(self) -> None:
        directory = self.artifact_root / "migrations"
        directory.mkdir(parents=True)
        (directory / "2026_01_01_000000_drop_contacts_table.json").write_text(
            json.dumps({"name": "x", "operation": "drop_table", "table": "contacts"}),
            encoding="utf-8",
        )
        with self.assertRaises(GenerationFailed):
            run_pending_migrations()
        self.assertFalse(AppliedMigration.objects.exists())

    def test_management_command(self) -> None:
        artifacts.create_migration_artifact("contacts", ["email"])
        call_command("apply_form_migrations", verbosity=0)
        self.assertTrue(table_exists("contacts"))


class SignalRecorder:
    def __init__(self, signal) -> None:
        self.forms = []
        self.signal = signal
        signal.connect(self.receive, dispatch_uid=f"recorder-{id(self)}")

    def receive(self, sender, form, **kwargs) -> None:
        self.forms.append(form)

    def disconnect(self) -> None:
        self.signal.disconnect(dispatch_uid=f"recorder-{id(self)}")


class LifecycleTestCase(GeneratedTablesMixin, TransactionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = make_user()

    def record(self, signal) -> SignalRecorder:
        recorder = SignalRecorder(signal)
        self.addCleanup(recorder.disconnect)
        return recorder


class CreateFormTests(LifecycleTestCase):
    def test_create_materializes_table_and_artifacts(self) -> None:
        created = self.record(form_created)

        form = lifecycle.create_form(
            self.owner.id, definition("Customer Feedback", ["rating", "comment"])
        )

        self.assertEqual(form.identifier, "customer_feedbacks")
        self.assertEqual(form.user_id, self.owner.id)
        self.assertTrue(table_exists("customer_feedbacks"))
        self.assertEqual(live_columns("customer_feedbacks"), ["rating", "comment"])
        self.assertEqual(len(self.migration_artifacts()), 1)
        self.assertEqual([path.name for path in self.model_artifacts()], ["CustomerFeedback.json"])
        self.assertEqual(AppliedMigration.objects.get().table_name, "customer_feedbacks")
        self.assertEqual(created.forms, [form])

    def test_accepts_json_text_definition(self) -> None:
        payload = {"name": "Contact", "form_builder_json": json.dumps([{"name": "email"}, {"type": "header"}])}
        form = lifecycle.create_form(self.owner.id, payload)
        self.assertEqual(form.field_names(), ["email"])
        self.assertEqual(live_columns("contacts"), ["email"])

    def test_duplicate_identifier_is_rejected(self) -> None:
        lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))
        with self.assertRaises(ValidationFailed):
            lifecycle.create_form(self.owner.id, definition("contact", ["phone"]))
        self.assertEqual(Form.objects.count(), 1)

    def test_failure_before_migration_run_leaves_artifacts_behind(self) -> None:
        created = self.record(form_created)

        with mock.patch(
            "formbuilder.lifecycle.run_pending_migrations", side_effect=RuntimeError("migrate failed")
        ):
            with self.assertRaises(GenerationFailed) as ctx:
                lifecycle.create_form(self.owner.id, definition("Customer Feedback", ["rating"]))

        self.assertEqual(str(ctx.exception.detail), "Failed to create the form and table.")
        self.assertFalse(Form.objects.exists())
        self.assertEqual(len(self.migration_artifacts()), 1)
        self.assertEqual(len(self.model_artifacts()), 1)
        self.assertFalse(table_exists("customer_feedbacks"))
        # the notification went out before the failure
        self.assertEqual(len(created.forms), 1)

    def test_artifact_failure_rolls_back_the_row(self) -> None:
        with mock.patch(
            "formbuilder.lifecycle.artifacts.create_model_artifact",
            side_effect=GenerationFailed("disk full"),
        ):
            with self.assertRaises(GenerationFailed):
                lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))

        self.assertFalse(Form.objects.exists())
        self.assertEqual(len(self.migration_artifacts()), 1)
        self.assertEqual(self.model_artifacts(), [])


class UpdateFormTests(LifecycleTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.form = lifecycle.create_form(self.owner.id, definition("Survey", ["a", "b", "c"]))

    def test_update_renames_by_position_and_adds(self) -> None:
        submit_form("surveys", {"a": "1", "b": "2", "c": "3"})

        form = lifecycle.update_form(
            self.owner.id, self.form.id, definition("Renamed Survey", ["a", "x", "c", "d"])
        )

        self.assertEqual(form.name, "Renamed Survey")
        self.assertEqual(form.identifier, "surveys")
        self.assertEqual(live_columns("surveys"), ["a", "x", "c", "d"])
        document = json.loads((self.artifact_root / "models" / "Survey.json").read_text())
        self.assertEqual(document["fillable"], ["a", "x", "c", "d"])
        row = submit_form("surveys", {"x": "new", "d": "added"})
        self.assertEqual((row.x, row.d), ("new", "added"))

    def test_update_keeps_columns_of_removed_fields(self) -> None:
        lifecycle.update_form(self.owner.id, self.form.id, definition("Survey", ["a"]))
        self.assertEqual(live_columns("surveys"), ["a", "b", "c"])
        self.assertEqual(Form.objects.get().field_names(), ["a"])

    def test_failed_sync_restores_the_row_only(self) -> None:
        with mock.patch(
            "formbuilder.lifecycle.sync_table_schema", side_effect=SchemaSyncFailed()
        ):
            with self.assertRaises(GenerationFailed) as ctx:
                lifecycle.update_form(
                    self.owner.id, self.form.id, definition("Other", ["a", "x"])
                )

        self.assertEqual(str(ctx.exception.detail), "Failed to update the form and table.")
        form = Form.objects.get()
        self.assertEqual(form.name, "Survey")
        self.assertEqual(form.field_names(), ["a", "b", "c"])

    def test_schema_changes_are_not_reverted_when_a_later_step_fails(self) -> None:
        with mock.patch(
            "formbuilder.lifecycle.run_pending_migrations", side_effect=GenerationFailed()
        ):
            with self.assertRaises(GenerationFailed):
                lifecycle.update_form(self.owner.id, self.form.id, definition("Survey", ["a", "x", "c"]))

        self.assertEqual(Form.objects.get().field_names(), ["a", "b", "c"])
        self.assertEqual(live_columns("surveys"), ["a", "x", "c"])

    def test_update_of_someone_elses_form_is_not_found(self) -> None:
        stranger = make_user("stranger")
        with self.assertRaises(NotFound):
            lifecycle.update_form(stranger.id, self.form.id, definition("Survey", ["z"]))

    def test_update_event_is_disabled_by_default(self) -> None:
        updated = self.record(form_updated)
        lifecycle.update_form(self.owner.id, self.form.id, definition("Survey", ["a", "b", "c"]))
        self.assertEqual(updated.forms, [])

        with override_settings(FORMBUILDER_EMIT_UPDATE_EVENTS=True):
            lifecycle.update_form(self.owner.id, self.form.id, definition("Survey", ["a", "b", "c"]))
        self.assertEqual(len(updated.forms), 1)


class DeleteAndReadFormTests(LifecycleTestCase):
    def test_delete_keeps_table_and_model_artifact(self) -> None:
        deleted = self.record(form_deleted)
        form = lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))

        lifecycle.delete_form(self.owner.id, form.id)

        self.assertFalse(Form.objects.exists())
        self.assertTrue(table_exists("contacts"))
        self.assertEqual(len(self.model_artifacts()), 1)
        self.assertEqual([item.identifier for item in deleted.forms], ["contacts"])

    def test_recreating_a_deleted_form_is_refused(self) -> None:
        form = lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))
        lifecycle.delete_form(self.owner.id, form.id)

        with self.assertRaises(GenerationFailed) as ctx:
            lifecycle.create_form(self.owner.id, definition("Contact", ["phone", "city"]))

        self.assertEqual(str(ctx.exception.detail), "Failed to create the form and table.")
        self.assertFalse(Form.objects.exists())
        self.assertEqual(live_columns("contacts"), ["email"])
        self.assertEqual(len(self.migration_artifacts()), 1)
        self.assertEqual(MigrationRunner().pending(), [])

    def test_delete_missing_form(self) -> None:
        with self.assertRaises(NotFound):
            lifecycle.delete_form(self.owner.id, 999)

    def test_get_form_counts_submissions(self) -> None:
        form = lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))
        submit_form("contacts", {"email": "a@example.com"})
        submit_form("contacts", {"email": "b@example.com"})

        self.assertEqual(lifecycle.get_form(self.owner.id, form.id).submission_count, 2)

    def test_list_forms_only_returns_own_forms(self) -> None:
        mine = lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))
        lifecycle.create_form(make_user("other").id, definition("Survey", ["a"]))

        self.assertEqual(list(lifecycle.list_forms(self.owner.id)), [mine])


class SubmissionTests(GeneratedTablesMixin, TransactionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = make_user()
        self.form = lifecycle.create_form(
            self.owner.id, definition("Customer Feedback", ["rating", "comment", "topics"])
        )

    def rows(self):
        return registry.resolve("customer_feedbacks").objects.all()

    def test_submit_assigns_known_fields_only(self) -> None:
        row = submissions.submit_form(
            "customer_feedbacks",
            {"rating": "5", "comment": "Great", "topics": ["price", "support"], "csrfmiddlewaretoken": "x", "bogus": 1},
        )

        stored = self.rows().get(pk=row.pk)
        self.assertEqual(stored.rating, "5")
        self.assertEqual(stored.comment, "Great")
        self.assertEqual(stored.topics, "price, support")
        self.assertFalse(hasattr(stored, "bogus"))

    def test_unknown_identifier_is_not_found_without_writes(self) -> None:
        with self.assertRaises(NotFound):
            submissions.submit_form("missing_forms", {"rating": "1"})
        self.assertEqual(self.rows().count(), 0)

    def test_missing_model_artifact_is_unresolved(self) -> None:
        (self.artifact_root / "models" / "CustomerFeedback.json").unlink()
        with self.assertRaises(ModelUnresolved):
            submissions.submit_form("customer_feedbacks", {"rating": "1"})

    def test_persistence_failure_surfaces_generic_message(self) -> None:
        model = registry.resolve("customer_feedbacks")
        with mock.patch.object(model, "save", side_effect=DatabaseError("disk I/O error")):
            with self.assertRaises(SubmissionFailed) as ctx:
                submissions.submit_form("customer_feedbacks", {"rating": "1"})

        self.assertNotIn("disk", str(ctx.exception.detail))
        self.assertEqual(self.rows().count(), 0)

    def test_render_and_feedback(self) -> None:
        self.assertEqual(submissions.render_form("customer_feedbacks"), self.form)
        self.assertEqual(submissions.form_feedback("customer_feedbacks"), self.form)
        with self.assertRaises(NotFound):
            submissions.render_form("nothing_heres")

    def test_list_is_newest_first(self) -> None:
        first = submissions.submit_form("customer_feedbacks", {"rating": "1"})
        second = submissions.submit_form("customer_feedbacks", {"rating": "2"})

        form, rows = submissions.list_submissions(self.owner.id, self.form.id)

        self.assertEqual(form, self.form)
        self.assertEqual([row.pk for row in rows], [second.pk, first.pk])

    def test_other_owner_is_forbidden(self) -> None:
        stranger = make_user("stranger")
        with self.assertRaises(Forbidden):
            submissions.list_submissions(stranger.id, self.form.id)
        with self.assertRaises(NotFound):
            submissions.list_submissions(self.owner.id, 999)

    def test_show_submission_includes_entries_header(self) -> None:
        row = submissions.submit_form("customer_feedbacks", {"rating": "4"})
        form, shown, header = submissions.show_submission(self.owner.id, self.form.id, row.pk)
        self.assertEqual(shown.rating, "4")
        self.assertEqual([entry["name"] for entry in header], ["rating", "comment", "topics"])
        self.assertEqual(header[0]["label"], "Rating")

    def test_delete_submission(self) -> None:
        row = submissions.submit_form("customer_feedbacks", {"rating": "4"})
        submissions.delete_submission(self.owner.id, self.form.id, row.pk)
        self.assertEqual(self.rows().count(), 0)

    def test_delete_missing_submission_leaves_table_unchanged(self) -> None:
        row = submissions.submit_form("customer_feedbacks", {"rating": "4"})
        with self.assertRaises(NotFound):
            submissions.delete_submission(self.owner.id, self.form.id, row.pk + 100)
        self.assertEqual(list(self.rows().values_list("pk", flat=True)), [row.pk])


class ReconcileTaskTests(GeneratedTablesMixin, TransactionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = make_user()

    def test_reconcile_adds_columns_missing_from_table(self) -> None:
        form = lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))
        # definition saved without the table following, e.g. after a failed update
        Form.objects.filter(pk=form.pk).update(form_builder_json=[field("email"), field("phone")])

        added = tasks.reconcile_form_schema(form.pk)

        self.assertEqual(added, ["phone"])
        self.assertEqual(live_columns("contacts"), ["email", "phone"])
        document = json.loads(artifacts.model_artifact_path("contacts").read_text())
        self.assertEqual(document["fillable"], ["email", "phone"])

    def test_reconcile_missing_form(self) -> None:
        self.assertEqual(tasks.reconcile_form_schema(999), [])

    def test_reconcile_all_forms_fans_out(self) -> None:
        first = lifecycle.create_form(self.owner.id, definition("Contact", ["email"]))
        second = lifecycle.create_form(self.owner.id, definition("Survey", ["a"]))
        with mock.patch("formbuilder.tasks.reconcile_form_schema") as reconcile:
            self.assertEqual(tasks.reconcile_all_forms(), 2)
        self.assertEqual(
            sorted(call.args[0] for call in reconcile.delay.call_args_list), sorted([first.pk, second.pk])
        )

    def test_apply_pending_form_migrations(self) -> None:
        artifacts.create_migration_artifact("leftovers", ["note"])
        applied = tasks.apply_pending_form_migrations()
        self.assertEqual(len(applied), 1)
        self.assertTrue(table_exists("leftovers"))


class FormApiTests(GeneratedTablesMixin, APITransactionTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = make_user()
        self.client = APIClient()
        self.client.force_authenticate(self.owner)
        self.anonymous = APIClient()

    def create_form(self, name: str = "Customer Feedback", names=("rating", "comment"), **extra):
        payload = {
            "name": name,
            "form_builder_json": json.dumps([field(item) for item in names]),
            **extra,
        }
        response = self.client.post(reverse("form-list"), payload, format="json")
        self.assertEqual(response.status_code, 201, response.data)
        return response.data["form"]

    def test_health(self) -> None:
        response = self.anonymous.get(reverse("form-health"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "ok")

    def test_create_list_and_retrieve(self) -> None:
        form = self.create_form()
        self.assertEqual(form["identifier"], "customer_feedbacks")
        self.assertEqual([item["name"] for item in form["form_builder_json"]], ["rating", "comment"])

        response = self.client.get(reverse("form-list"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["identifier"], "customer_feedbacks")

        response = self.client.get(reverse("form-detail", args=[form["id"]]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["submission_count"], 0)
        self.assertEqual(response.data["entries_header"][1]["name"], "comment")

    def test_non_numeric_ids_are_not_found(self) -> None:
        form = self.create_form()
        self.assertEqual(self.client.get("/api/forms/abc/").status_code, 404)
        self.assertEqual(self.client.get(f"/api/forms/{form['id']}/submissions/abc/").status_code, 404)

    def test_requires_authentication(self) -> None:
        response = self.anonymous.get(reverse("form-list"))
        self.assertIn(response.status_code, {401, 403})

    def test_invalid_definition_is_rejected(self) -> None:
        response = self.client.post(
            reverse("form-list"), {"name": "Broken", "form_builder_json": "[{"}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("form_builder_json", response.data)
        self.assertFalse(Form.objects.exists())

    def test_duplicate_form_name(self) -> None:
        self.create_form()
        response = self.client.post(
            reverse("form-list"),
            {"name": "Customer Feedback", "form_builder_json": "[]"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_update_syncs_columns(self) -> None:
        form = self.create_form(names=("rating", "comment"))
        response = self.client.put(
            reverse("form-detail", args=[form["id"]]),
            definition("Feedback v2", ["score", "comment", "email"]),
            format="json",
        )
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["form"]["identifier"], "customer_feedbacks")
        self.assertEqual(live_columns("customer_feedbacks"), ["score", "comment", "email"])

    def test_partial_update_of_name_keeps_columns(self) -> None:
        form = self.create_form()
        response = self.client.patch(
            reverse("form-detail", args=[form["id"]]), {"name": "Renamed"}, format="json"
        )
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["form"]["name"], "Renamed")
        self.assertEqual(live_columns("customer_feedbacks"), ["rating", "comment"])

    def test_other_users_cannot_see_form(self) -> None:
        form = self.create_form()
        stranger = APIClient()
        stranger.force_authenticate(make_user("stranger"))

        self.assertEqual(stranger.get(reverse("form-detail", args=[form["id"]])).status_code, 404)
        response = stranger.get(reverse("form-submission-list", args=[form["id"]]))
        self.assertEqual(response.status_code, 403)

    def test_public_submission_flow(self) -> None:
        form = self.create_form()

        response = self.anonymous.get(reverse("public-form", args=["customer_feedbacks"]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["title"], "Customer Feedback")

        response = self.anonymous.post(
            reverse("public-form", args=["customer_feedbacks"]),
            {"rating": "5", "comment": "Lovely", "unknown": "ignored"},
        )
        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["dest"], reverse("public-form-feedback", args=["customer_feedbacks"]))
        submission_id = response.data["submission_id"]

        response = self.anonymous.get(reverse("public-form-feedback", args=["customer_feedbacks"]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["title"], "Form Submitted!")

        response = self.client.get(reverse("form-submission-list", args=[form["id"]]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["comment"], "Lovely")
        self.assertEqual(response.data["form"]["id"], form["id"])

        response = self.client.get(reverse("form-submission-detail", args=[form["id"], submission_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["entries"][0], {"name": "rating", "label": "Rating", "value": "5"})

        response = self.client.delete(reverse("form-submission-detail", args=[form["id"], submission_id]))
        self.assertEqual(response.status_code, 200)
        response = self.client.delete(reverse("form-submission-detail", args=[form["id"], submission_id]))
        self.assertEqual(response.status_code, 404)

    def test_checkbox_groups_are_joined(self) -> None:
        self.create_form(names=("topics",))
        response = self.anonymous.post(
            reverse("public-form", args=["customer_feedbacks"]),
            {"topics[]": ["price", "support"]},
        )
        self.assertEqual(response.status_code, 201, response.data)
        response = self.client.get(reverse("form-submission-list", args=[Form.objects.get().id]))
        self.assertEqual(response.data["results"][0]["topics"], "price, support")

    def test_submitting_to_unknown_form(self) -> None:
        response = self.anonymous.post(reverse("public-form", args=["nothing_heres"]), {"a": "b"})
        self.assertEqual(response.status_code, 404)

    def test_private_forms_need_a_signed_in_user(self) -> None:
        self.create_form(visibility=Form.PRIVATE)
        url = reverse("public-form", args=["customer_feedbacks"])

        self.assertIn(self.anonymous.get(url).status_code, {401, 403})
        self.assertEqual(self.client.get(url).status_code, 200)

    def test_delete_form_keeps_table(self) -> None:
        form = self.create_form()
        response = self.client.delete(reverse("form-detail", args=[form["id"]]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["details"], "'Customer Feedback' deleted.")
        self.assertEqual(live_columns("customer_feedbacks"), ["rating", "comment"])
        self.assertEqual(self.anonymous.get(reverse("public-form", args=["customer_feedbacks"])).status_code, 404)
