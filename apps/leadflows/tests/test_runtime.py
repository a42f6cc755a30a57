from django.core.exceptions import ImproperlyConfigured
from django.test import SimpleTestCase

from apps.leadflows.engine.renderers import StepRenderer, default_renderers
from apps.leadflows.engine.runtime import FlowRuntime
from apps.leadflows.exceptions import FlowCompletedError, StepResponseError
from apps.leadflows.schema import FlowPayload, validate_or_raise

from .helpers import make_payload


class _EchoRenderer(StepRenderer):
    step_type = "form"

    @property
    def template_name(self):
        return "custom/form.html"


class FlowRuntimeNavigationTests(SimpleTestCase):
    def setUp(self):
        self.payload = validate_or_raise(make_payload())

    def test_starts_on_first_step(self):
        runtime = FlowRuntime(self.payload)
        self.assertEqual(runtime.current_step_index, 0)
        self.assertEqual(runtime.current_step.id, "A")
        self.assertEqual(runtime.responses, {})
        self.assertAlmostEqual(runtime.progress(), 1 / 3)

    def test_advance_skips_hidden_steps(self):
        runtime = FlowRuntime(self.payload)
        nxt = runtime.advance({"q1": "no"})
        self.assertEqual(nxt.id, "C")
        self.assertEqual([s.id for s in runtime.visible_steps], ["A", "C"])
        self.assertEqual(runtime.progress(), 1.0)

    def test_advance_through_visible_steps(self):
        runtime = FlowRuntime(self.payload)
        self.assertEqual(runtime.advance({"q1": "yes"}).id, "B")
        self.assertAlmostEqual(runtime.progress(), 2 / 3)
        self.assertEqual(runtime.advance({"email": "a@b.co"}).id, "C")
        self.assertEqual(runtime.responses, {"q1": "yes", "email": "a@b.co"})

    def test_completion_is_terminal_and_notifies(self):
        received = []
        runtime = FlowRuntime(self.payload, on_complete=received.append)
        runtime.advance({"q1": "no"})
        self.assertIsNone(runtime.advance({}))

        self.assertTrue(runtime.completed)
        self.assertIsNone(runtime.current_step)
        self.assertEqual(runtime.progress(), 1.0)
        self.assertEqual(received, [{"q1": "no"}])

        received[0]["q1"] = "tampered"
        self.assertEqual(runtime.responses["q1"], "no")

        with self.assertRaises(FlowCompletedError):
            runtime.advance({"q1": "yes"})
        self.assertEqual(len(received), 1)

    def test_several_completion_callbacks(self):
        calls = []
        runtime = FlowRuntime(self.payload, on_complete=[lambda r: calls.append("a"), lambda r: calls.append("b")])
        runtime.on_complete(lambda r: calls.append("c"))
        runtime.advance({"q1": "no"})
        runtime.advance()
        self.assertEqual(calls, ["a", "b", "c"])

    def test_retreat(self):
        runtime = FlowRuntime(self.payload)
        runtime.retreat()
        self.assertEqual(runtime.current_step.id, "A")

        runtime.advance({"q1": "yes"})
        self.assertTrue(runtime.can_go_back)
        self.assertEqual(runtime.retreat().id, "A")
        self.assertEqual(runtime.responses, {"q1": "yes"})

    def test_retreat_skips_hidden_steps(self):
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "no"})
        self.assertEqual(runtime.retreat().id, "A")

    def test_retreat_disabled_by_settings(self):
        payload = validate_or_raise(make_payload(settings={"allowBack": False}))
        runtime = FlowRuntime(payload)
        runtime.advance({"q1": "yes"})
        runtime.retreat()
        self.assertEqual(runtime.current_step.id, "B")
        self.assertFalse(runtime.can_go_back)

    def test_retreat_after_completion_is_noop(self):
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "no"})
        runtime.advance()
        self.assertIsNone(runtime.retreat())
        self.assertTrue(runtime.completed)

    def test_empty_flow(self):
        payload = validate_or_raise(make_payload(steps=[], logic=[]))
        runtime = FlowRuntime(payload)
        self.assertEqual(runtime.progress(), 1.0)
        self.assertIsNone(runtime.current_step)
        self.assertIsNone(runtime.advance({"x": 1}))
        self.assertTrue(runtime.completed)

    def test_payload_is_not_mutated(self):
        before = self.payload.to_document()
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "yes"})
        runtime.advance({"email": "a@b.co"})
        self.assertEqual(self.payload.to_document(), before)


class FlowRuntimeSnapshotTests(SimpleTestCase):
    def setUp(self):
        self.payload = validate_or_raise(make_payload())

    def test_snapshot_and_restore(self):
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "yes"})
        state = runtime.snapshot()
        self.assertEqual(state, {"step_id": "B", "responses": {"q1": "yes"}, "completed": False})

        restored = FlowRuntime.restore(self.payload, state)
        self.assertEqual(restored.current_step.id, "B")
        self.assertEqual(restored.responses, {"q1": "yes"})
        self.assertEqual(restored.advance({"email": "x@y.z"}).id, "C")

    def test_restore_unknown_step_falls_back_to_first(self):
        restored = FlowRuntime.restore(self.payload, {"step_id": "gone", "responses": {}})
        self.assertEqual(restored.current_step.id, "A")


class FlowRuntimeRenderingTests(SimpleTestCase):
    def setUp(self):
        doc = make_payload()
        doc["logic"].append({
            "target": {"scope": "field", "id": "f-phone"},
            "action": "show",
            "conditions": [{"sourceId": "q1", "operator": "equals", "value": "yes"}],
        })
        doc["logic"].append({
            "target": {"scope": "field", "id": "f-email"},
            "action": "disable",
            "conditions": [{"sourceId": "q1", "operator": "equals", "value": "maybe"}],
        })
        self.payload = validate_or_raise(doc)

    def test_render_current_uses_step_type_renderer(self):
        runtime = FlowRuntime(self.payload)
        rendered = runtime.render_current()
        self.assertEqual(rendered.template, "leadflows/steps/form.html")
        self.assertEqual(rendered.step_id, "A")
        self.assertEqual([f["field_name"] for f in rendered.context["fields"]], ["q1"])
        self.assertIsNone(rendered.on_back)
        self.assertEqual(rendered.context["style"]["primaryColor"], "#3B82F6")

    def test_rendered_fields_follow_logic(self):
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "maybe"})
        rendered = runtime.render_current()
        fields = {f["field_name"]: f for f in rendered.context["fields"]}
        self.assertEqual(set(fields), {"email"})
        self.assertTrue(fields["email"]["disabled"])
        self.assertEqual(runtime.field_state("f-phone"), {"visible": False, "enabled": True})
        self.assertTrue(rendered.can_go_back)

    def test_on_complete_advances(self):
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "yes"})
        rendered = runtime.render_current()
        rendered.on_complete({"email": "a@b.co", "phone": "555"})
        self.assertEqual(runtime.current_step.id, "C")
        self.assertEqual(runtime.render_current().template, "leadflows/steps/thank_you.html")

    def test_missing_renderer_is_a_configuration_error(self):
        runtime = FlowRuntime(self.payload, renderers={})
        with self.assertRaises(ImproperlyConfigured):
            runtime.render_current()

    def test_renderers_can_be_overridden(self):
        renderers = default_renderers()
        renderers["form"] = _EchoRenderer()
        runtime = FlowRuntime(self.payload, renderers=renderers)
        self.assertEqual(runtime.render_current().template, "custom/form.html")


class FlowRuntimeAnswerCheckTests(SimpleTestCase):
    def setUp(self):
        doc = make_payload()
        doc["steps"][1]["fields"][1]["validation_rules"] = {"pattern": r"^\d{10}$", "message": "Enter 10 digits"}
        self.payload = validate_or_raise(doc)

    def test_missing_required_answer_keeps_the_step(self):
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "yes"})
        with self.assertRaises(StepResponseError) as ctx:
            runtime.advance({"email": "  "})
        self.assertEqual(ctx.exception.step_id, "B")
        self.assertEqual(ctx.exception.errors, {"email": ["This field is required."]})
        self.assertEqual(runtime.current_step.id, "B")
        self.assertEqual(runtime.responses, {"q1": "yes"})

    def test_validation_rules_are_checked(self):
        runtime = FlowRuntime(self.payload)
        runtime.advance({"q1": "yes"})
        with self.assertRaises(StepResponseError) as ctx:
            runtime.advance({"email": "a@b.co", "phone": "abc"})
        self.assertEqual(ctx.exception.as_list(), [{"path": "phone", "message": "Enter 10 digits"}])
        self.assertEqual(runtime.current_step.id, "B")

        self.assertEqual(runtime.advance({"email": "a@b.co", "phone": "5551234567"}).id, "C")

    def test_earlier_answers_count(self):
        runtime = FlowRuntime.restore(self.payload, {"step_id": "B", "responses": {"q1": "yes", "email": "a@b.co"}})
        self.assertEqual(runtime.advance({}).id, "C")

    def test_fields_turned_off_by_logic_are_not_checked(self):
        doc = make_payload()
        doc["logic"].append({
            "target": {"scope": "field", "id": "f-email"},
            "action": "disable",
            "conditions": [{"sourceId": "q1", "operator": "equals", "value": "later"}],
        })
        runtime = FlowRuntime(validate_or_raise(doc))
        runtime.advance({"q1": "later"})
        self.assertEqual(runtime.advance({}).id, "C")

    def test_completion_callbacks_skip_rejected_answers(self):
        received = []
        runtime = FlowRuntime(self.payload, on_complete=received.append)
        runtime.advance({"q1": "yes"})
        with self.assertRaises(StepResponseError):
            runtime.advance({})
        runtime.advance({"email": "a@b.co"})
        runtime.advance()
        self.assertEqual(received, [{"q1": "yes", "email": "a@b.co"}])


class FlowRuntimeNoVisibleStepTests(SimpleTestCase):
    def setUp(self):
        # construit sans les contrôles croisés: la source n'existe dans aucune step
        self.payload = FlowPayload.model_validate({
            "name": "Gate",
            "slug": "gate",
            "steps": [
                {"id": "A", "step_order": 0, "step_type": "form", "title": "Only",
                 "fields": [{"id": "f-email", "field_type": "email", "field_name": "email", "is_required": True}]},
            ],
            "logic": [
                {"target": {"scope": "step", "id": "A"}, "action": "show",
                 "conditions": [{"sourceId": "x", "operator": "equals", "value": 1}]},
            ],
        })

    def test_hidden_first_step_is_not_current(self):
        runtime = FlowRuntime(self.payload)
        self.assertEqual(runtime.visible_steps, [])
        self.assertIsNone(runtime.current_step)
        self.assertIsNone(runtime.render_current())
        self.assertEqual(runtime.progress(), 1.0)
        self.assertEqual(runtime.snapshot()["step_id"], None)

    def test_advance_completes_without_checking_hidden_step(self):
        received = []
        runtime = FlowRuntime(self.payload, on_complete=received.append)
        self.assertIsNone(runtime.advance({}))
        self.assertTrue(runtime.completed)
        self.assertEqual(received, [{}])
