import uuid
from unittest import mock

from django.test import TestCase

from apps.leadflows import repository
from apps.leadflows.constants import AuditAction, FlowStatus, VersionStatus
from apps.leadflows.exceptions import FlowNotFoundError, FlowValidationError, VersionConflictError
from apps.leadflows.models import Flow, FlowAudit, FlowVersion

from .helpers import make_payload


class SaveDraftTests(TestCase):
    def test_versions_are_sequential(self):
        first = repository.save_draft(None, make_payload())
        second = repository.save_draft(first.flow_id, make_payload(name="Housing search v2"))

        self.assertEqual(first.version, 1)
        self.assertEqual(second.version, 2)
        self.assertEqual(second.flow_id, first.flow_id)
        self.assertEqual(
            list(FlowVersion.objects.filter(flow_id=first.flow_id).order_by("version").values_list("version", flat=True)),
            [1, 2],
        )

    def test_new_flow_starts_as_draft(self):
        saved = repository.save_draft(None, make_payload())
        flow = Flow.objects.get(pk=saved.flow_id)
        self.assertEqual(flow.status, FlowStatus.DRAFT)
        self.assertEqual(flow.slug, "housing-search")

        row = FlowVersion.objects.get(flow=flow)
        self.assertEqual(row.status, VersionStatus.DRAFT)
        self.assertEqual(row.slug, "housing-search")
        self.assertEqual(row.payload["id"], str(flow.pk))
        self.assertEqual(row.payload["steps"][0]["button_text"], "Continue")
        self.assertTrue(FlowAudit.objects.filter(flow_id=flow.pk, action=AuditAction.SAVE_DRAFT).exists())

    def test_invalid_payload_writes_nothing(self):
        doc = make_payload()
        doc["steps"][1]["fields"][1]["field_name"] = "email"
        with self.assertRaises(FlowValidationError) as ctx:
            repository.save_draft(None, doc)
        self.assertIn("email", str(ctx.exception))
        self.assertEqual(Flow.objects.count(), 0)
        self.assertEqual(FlowVersion.objects.count(), 0)

    def test_unknown_flow(self):
        with self.assertRaises(FlowNotFoundError):
            repository.save_draft(uuid.uuid4(), make_payload())
        with self.assertRaises(FlowNotFoundError):
            repository.save_draft("not-a-uuid", make_payload())

    def test_concurrent_writer_conflict_is_reported(self):
        saved = repository.save_draft(None, make_payload())
        # un autre écrivain a déjà pris la version 1
        with mock.patch("apps.leadflows.repository._current_max_version", return_value=0):
            with self.assertRaises(VersionConflictError) as ctx:
                repository.save_draft(saved.flow_id, make_payload())
        self.assertEqual(ctx.exception.version, 1)
        self.assertEqual(FlowVersion.objects.filter(flow_id=saved.flow_id).count(), 1)

    def test_retry_rereads_the_version(self):
        saved = repository.save_draft(None, make_payload())
        with mock.patch("apps.leadflows.repository._current_max_version", side_effect=[0, 1]):
            again = repository.save_draft_with_retry(saved.flow_id, make_payload(), retries=2)
        self.assertEqual(again.version, 2)

    def test_retry_gives_up(self):
        saved = repository.save_draft(None, make_payload())
        with mock.patch("apps.leadflows.repository._current_max_version", return_value=0):
            with self.assertRaises(VersionConflictError):
                repository.save_draft_with_retry(saved.flow_id, make_payload(), retries=1)


class PublishTests(TestCase):
    def test_publish_requires_a_draft(self):
        flow = Flow.objects.create(name="Empty", slug="housing-search")
        with self.assertRaises(FlowNotFoundError):
            repository.publish(flow.pk)

        saved = repository.save_draft(flow.pk, make_payload())
        result = repository.publish(saved.flow_id)
        self.assertEqual(result.version, 1)

    def test_publish_unknown_flow(self):
        with self.assertRaises(FlowNotFoundError):
            repository.publish(uuid.uuid4())

    def test_publish_latest_draft_and_denormalize(self):
        saved = repository.save_draft(None, make_payload())
        repository.save_draft(saved.flow_id, make_payload(
            name="Housing search v2",
            style_config={"primaryColor": "#DC2626"},
        ))

        self.assertEqual(repository.publish(saved.flow_id).version, 2)

        flow = Flow.objects.get(pk=saved.flow_id)
        self.assertEqual(flow.status, FlowStatus.ACTIVE)
        self.assertEqual(flow.name, "Housing search v2")
        self.assertEqual(flow.style_config["primaryColor"], "#DC2626")
        published = FlowVersion.objects.get(flow=flow, status=VersionStatus.PUBLISHED)
        self.assertEqual(published.version, 2)
        self.assertIsNotNone(published.published_at)

        # v1 est plus ancienne que la publiée: plus rien à publier
        with self.assertRaises(FlowNotFoundError):
            repository.publish(saved.flow_id)

    def test_published_lookup_by_slug(self):
        saved = repository.save_draft(None, make_payload())
        self.assertIsNone(repository.get_published_by_slug("housing-search"))

        repository.publish(saved.flow_id)
        repository.save_draft(saved.flow_id, make_payload(name="Next draft"))

        found = repository.get_published_by_slug("housing-search")
        self.assertEqual(found.flow_id, saved.flow_id)
        self.assertEqual(found.version, 1)
        self.assertEqual(found.payload.name, "Housing search")
        self.assertIsNone(repository.get_published_by_slug("unknown"))

    def test_renamed_flow_is_served_under_new_slug_only(self):
        saved = repository.save_draft(None, make_payload())
        repository.publish(saved.flow_id)
        repository.save_draft(saved.flow_id, make_payload(slug="housing-search-2024"))

        # brouillon renommé non publié: l'ancien slug sert toujours v1
        self.assertEqual(repository.get_published_by_slug("housing-search").version, 1)
        self.assertIsNone(repository.get_published_by_slug("housing-search-2024"))

        repository.publish(saved.flow_id)
        self.assertIsNone(repository.get_published_by_slug("housing-search"))
        found = repository.get_published_by_slug("housing-search-2024")
        self.assertEqual(found.version, 2)
        self.assertEqual(
            list(FlowVersion.objects.filter(flow_id=saved.flow_id).order_by("version").values_list("slug", flat=True)),
            ["housing-search", "housing-search-2024"],
        )

    def test_null_open_keys_survive_publish(self):
        saved = repository.save_draft(None, make_payload(
            settings={"allowBack": True, "partnerCode": None},
            google_ads_config={"conversionId": "AW-1", "legacyTag": None},
        ))
        repository.publish(saved.flow_id)

        flow = Flow.objects.get(pk=saved.flow_id)
        self.assertEqual(flow.settings, {"allowBack": True, "partnerCode": None})
        self.assertEqual(flow.google_ads_config, {"conversionId": "AW-1", "legacyTag": None})
        row = FlowVersion.objects.get(flow=flow)
        self.assertIn("partnerCode", row.payload["settings"])
        self.assertIsNone(row.payload["settings"]["partnerCode"])

    def test_slug_clash_between_active_flows(self):
        first = repository.save_draft(None, make_payload())
        repository.publish(first.flow_id)

        second = repository.save_draft(None, make_payload(name="Copy"))
        with self.assertRaises(FlowValidationError) as ctx:
            repository.publish(second.flow_id)
        self.assertEqual(ctx.exception.errors[0].path, "slug")
        self.assertEqual(Flow.objects.get(pk=second.flow_id).status, FlowStatus.DRAFT)

    def test_corrupt_stored_payload_is_not_served(self):
        saved = repository.save_draft(None, make_payload())
        repository.publish(saved.flow_id)
        FlowVersion.objects.filter(flow_id=saved.flow_id).update(payload={"name": "", "slug": "housing-search"})

        with self.assertLogs("leadflows.repository", level="ERROR"):
            self.assertIsNone(repository.get_published_by_slug("housing-search"))


class FlowLifecycleTests(TestCase):
    def test_get_draft_version(self):
        saved = repository.save_draft(None, make_payload())
        repository.save_draft(saved.flow_id, make_payload(name="Second"))
        self.assertEqual(repository.get_draft_version(saved.flow_id).name, "Second")
        self.assertIsNone(repository.get_draft_version(uuid.uuid4()))
        self.assertIsNone(repository.get_draft_version("garbage"))

    def test_list_flows(self):
        a = repository.save_draft(None, make_payload())
        repository.save_draft(a.flow_id, make_payload())
        repository.publish(a.flow_id)
        b = repository.save_draft(None, make_payload(slug="other-flow", name="Other"))

        summaries = {s.id: s for s in repository.list_flows()}
        self.assertEqual(summaries[a.flow_id].latest_version, 2)
        self.assertEqual(summaries[a.flow_id].published_version, 2)
        self.assertEqual(summaries[a.flow_id].status, FlowStatus.ACTIVE)
        self.assertEqual(summaries[b.flow_id].latest_version, 1)
        self.assertIsNone(summaries[b.flow_id].published_version)

    def test_pause_hides_published_flow(self):
        saved = repository.save_draft(None, make_payload())
        repository.publish(saved.flow_id)

        repository.set_flow_status(saved.flow_id, FlowStatus.PAUSED)
        self.assertIsNone(repository.get_published_by_slug("housing-search"))

        repository.set_flow_status(saved.flow_id, FlowStatus.ACTIVE)
        self.assertIsNotNone(repository.get_published_by_slug("housing-search"))
        self.assertEqual(
            FlowAudit.objects.filter(flow_id=saved.flow_id, action=AuditAction.STATUS).count(), 2,
        )

    def test_activation_needs_published_version(self):
        saved = repository.save_draft(None, make_payload())
        with self.assertRaises(FlowNotFoundError):
            repository.set_flow_status(saved.flow_id, FlowStatus.ACTIVE)
        with self.assertRaises(ValueError):
            repository.set_flow_status(saved.flow_id, FlowStatus.DRAFT)

    def test_delete_flow_keeps_audit_trail(self):
        saved = repository.save_draft(None, make_payload())
        repository.save_draft(saved.flow_id, make_payload())

        self.assertEqual(repository.delete_flow(saved.flow_id), 2)
        self.assertFalse(Flow.objects.filter(pk=saved.flow_id).exists())
        self.assertEqual(FlowVersion.objects.count(), 0)
        self.assertTrue(FlowAudit.objects.filter(flow_id=saved.flow_id, action=AuditAction.DELETE).exists())

        with self.assertRaises(FlowNotFoundError):
            repository.delete_flow(saved.flow_id)
