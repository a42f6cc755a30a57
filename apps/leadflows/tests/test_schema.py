from django.test import SimpleTestCase, override_settings

from apps.leadflows.constants import STEP_TYPES
from apps.leadflows.exceptions import FlowValidationError
from apps.leadflows.schema import (
    DEFAULT_STYLE_CONFIG,
    STEP_KINDS,
    FlowStep,
    create_default_step,
    normalize_step_order,
    validate,
    validate_or_raise,
)

from .helpers import make_payload


def _paths(result):
    return [e.path for e in result.errors]


class FlowPayloadDefaultsTests(SimpleTestCase):
    def test_defaults_are_filled(self):
        result = validate(make_payload())
        self.assertTrue(result.ok, result.errors)
        payload = result.payload

        self.assertEqual(payload.status, "draft")
        self.assertEqual(payload.settings.model_dump(exclude_none=True), {})
        self.assertEqual(payload.google_ads_config.model_dump(exclude_none=True), {})
        self.assertEqual(payload.metadata, {})
        self.assertEqual(payload.style_config.primary_color, "#3B82F6")
        self.assertEqual(payload.steps[2].fields, [])
        self.assertEqual(payload.steps[0].button_text, "Continue")
        self.assertTrue(payload.steps[0].is_required)
        self.assertFalse(payload.steps[1].fields[1].is_required)

    def test_string_options_are_coerced(self):
        payload = validate(make_payload()).payload
        option = payload.steps[0].fields[0].options[1]
        self.assertEqual((option.label, option.value), ("no", "no"))

    def test_default_style_config(self):
        self.assertEqual(DEFAULT_STYLE_CONFIG, {
            "primaryColor": "#3B82F6",
            "backgroundColor": "#FFFFFF",
            "buttonStyle": "rounded",
            "layout": "centered",
            "fontFamily": "Inter",
            "borderRadius": 8,
            "shadowLevel": "md",
        })

    @override_settings(LEADFLOWS={"DEFAULT_BUTTON_TEXT": "Next"})
    def test_button_text_default_comes_from_settings(self):
        payload = validate(make_payload()).payload
        self.assertEqual(payload.steps[0].button_text, "Next")

    def test_round_trip_document(self):
        doc = make_payload(
            settings={"allowBack": False, "customFlag": "x"},
            metadata={"category": "housing"},
        )
        first = validate(doc).payload.to_document()
        again = validate(first)
        self.assertTrue(again.ok, again.errors)
        self.assertEqual(again.payload.to_document(), first)
        self.assertEqual(first["settings"], {"allowBack": False, "customFlag": "x"})

    def test_round_trip_keeps_null_open_keys(self):
        doc = make_payload(
            settings={"customFlag": None},
            google_ads_config={"conversionId": "AW-1", "gtagExtra": None},
            metadata={"category": None, "tags": ["a", None]},
        )
        doc["steps"][1]["fields"][1]["validation_rules"] = {"pattern": r"^\d+$", "hint": None}
        doc["steps"][1]["settings"] = {"sidebar": None}
        payload = validate(doc).payload

        document = payload.to_document()
        self.assertEqual(document["settings"], {"customFlag": None})
        self.assertEqual(document["google_ads_config"], {"conversionId": "AW-1", "gtagExtra": None})
        self.assertEqual(document["metadata"], {"category": None, "tags": ["a", None]})
        self.assertEqual(document["steps"][1]["fields"][1]["validation_rules"], {"pattern": r"^\d+$", "hint": None})
        self.assertEqual(document["steps"][1]["settings"], {"sidebar": None})
        # champs déclarés non renseignés: toujours omis
        self.assertNotIn("placeholder", document["steps"][1]["fields"][1])
        self.assertNotIn("description", document)

        again = validate(document)
        self.assertTrue(again.ok, again.errors)
        self.assertEqual(again.payload, payload)


class StructuralValidationTests(SimpleTestCase):
    def test_non_object_is_rejected_without_raising(self):
        result = validate(None)
        self.assertFalse(result.ok)
        self.assertIsNone(result.payload)
        self.assertTrue(result.errors)

    def test_bad_slug_and_field_type_reported_together(self):
        doc = make_payload(slug="Not A Slug")
        doc["steps"][1]["fields"][0]["field_type"] = "password"
        result = validate(doc)
        self.assertFalse(result.ok)
        self.assertIn("slug", _paths(result))
        self.assertIn("steps.1.fields.0.field_type", _paths(result))

    def test_bad_slug_and_duplicate_field_name_reported_together(self):
        doc = make_payload(slug="Not A Slug")
        doc["steps"][1]["fields"][1]["field_name"] = "email"
        result = validate(doc)
        self.assertFalse(result.ok)
        self.assertIn("slug", _paths(result))
        self.assertIn("steps.1.fields.1.field_name", _paths(result))

    def test_readable_steps_are_still_cross_checked(self):
        doc = make_payload()
        doc["steps"][0]["fields"].append(
            {"id": "f-q1-bis", "field_type": "text", "field_name": "q1"}
        )
        doc["steps"][1]["fields"][0]["field_type"] = "password"
        result = validate(doc)
        paths = _paths(result)
        self.assertIn("steps.1.fields.0.field_type", paths)
        self.assertIn("steps.0.fields.1.field_name", paths)
        # step B illisible: la règle qui la vise n'est pas signalée à tort
        self.assertNotIn("logic.0.target.id", paths)
        self.assertNotIn("steps", paths)

    def test_choice_field_needs_options(self):
        doc = make_payload()
        doc["steps"][0]["fields"][0]["options"] = []
        result = validate(doc)
        self.assertIn("steps.0.fields.0", _paths(result))
        self.assertIn("at least one option", result.errors[0].message)

    def test_pattern_must_compile(self):
        doc = make_payload()
        doc["steps"][1]["fields"][0]["validation_rules"] = {"pattern": "(["}
        result = validate(doc)
        self.assertIn("steps.1.fields.0.validation_rules.pattern", _paths(result))

    def test_min_cannot_exceed_max(self):
        doc = make_payload()
        doc["steps"][1]["fields"][1]["validation_rules"] = {"min": 10, "max": 2}
        result = validate(doc)
        self.assertFalse(result.ok)
        self.assertTrue(any("min cannot exceed max" in e.message for e in result.errors))

    def test_open_validation_rule_keys_survive(self):
        doc = make_payload()
        doc["steps"][1]["fields"][0]["validation_rules"] = {"minLength": 3, "email": True}
        payload = validate(doc).payload
        rules = payload.to_document()["steps"][1]["fields"][0]["validation_rules"]
        self.assertEqual(rules, {"minLength": 3, "email": True})

    def test_redirect_url_must_be_http(self):
        doc = make_payload()
        doc["steps"][2]["redirect_url"] = "ftp://example.com/x"
        self.assertIn("steps.2.redirect_url", _paths(validate(doc)))

    def test_colors_must_be_hex(self):
        result = validate(make_payload(style_config={"primaryColor": "blue"}))
        self.assertIn("style_config.primaryColor", _paths(result))

    def test_border_radius_bounds(self):
        result = validate(make_payload(style_config={"borderRadius": 80}))
        self.assertIn("style_config.borderRadius", _paths(result))


class CrossDocumentValidationTests(SimpleTestCase):
    def test_duplicate_field_name_in_one_step_names_the_duplicate(self):
        doc = make_payload()
        doc["steps"][1]["fields"][1]["field_name"] = "email"
        result = validate(doc)
        self.assertFalse(result.ok)
        self.assertEqual(_paths(result), ["steps.1.fields.1.field_name"])
        self.assertIn("'email'", result.errors[0].message)

    def test_duplicate_field_name_across_steps(self):
        doc = make_payload()
        doc["steps"][1]["fields"][1]["field_name"] = "q1"
        result = validate(doc)
        self.assertIn("steps.1.fields.1.field_name", _paths(result))

    def test_duplicate_ids(self):
        doc = make_payload()
        doc["steps"][1]["fields"][1]["id"] = "f-email"
        doc["steps"][2]["id"] = "A"
        paths = _paths(validate(doc))
        self.assertIn("steps.1.fields.1.id", paths)
        self.assertIn("steps.2.id", paths)

    def test_step_order_must_be_contiguous(self):
        doc = make_payload()
        doc["steps"][2]["step_order"] = 5
        self.assertIn("steps", _paths(validate(doc)))

    def test_step_order_must_be_unique(self):
        doc = make_payload()
        doc["steps"][2]["step_order"] = 1
        self.assertIn("steps.2.step_order", _paths(validate(doc)))

    def test_step_kind_rules(self):
        doc = make_payload()
        doc["steps"][0]["title"] = "  "
        doc["steps"][1]["fields"] = []
        doc["steps"][2]["settings"] = {"redirectDelay": 0}
        doc["steps"].append({"id": "D", "step_order": 3, "step_type": "content", "title": "Info"})
        doc["steps"].append({"id": "E", "step_order": 4, "step_type": "video", "title": "Watch"})
        paths = _paths(validate(doc))
        self.assertIn("steps.0.title", paths)
        self.assertIn("steps.1.fields", paths)
        self.assertIn("steps.2.settings.redirectDelay", paths)
        self.assertIn("steps.3.content", paths)
        self.assertIn("steps.4.settings.videoUrl", paths)

    def test_logic_targets_and_sources_must_exist(self):
        doc = make_payload(logic=[
            {"target": {"scope": "step", "id": "Z"}, "action": "hide",
             "conditions": [{"sourceId": "nope", "operator": "equals", "value": 1}]},
            {"target": {"scope": "step", "id": "B"}, "action": "disable",
             "conditions": [{"sourceId": "q1", "operator": "equals", "value": "no"}]},
            {"target": {"scope": "field", "id": "missing"}, "action": "show",
             "conditions": [{"sourceId": "q1", "operator": "equals", "value": "no"}]},
        ])
        paths = _paths(validate(doc))
        self.assertIn("logic.0.target.id", paths)
        self.assertIn("logic.0.conditions.0.sourceId", paths)
        self.assertIn("logic.1.action", paths)
        self.assertIn("logic.2.target.id", paths)

    def test_logic_operator_values(self):
        doc = make_payload(logic=[
            {"target": {"scope": "field", "id": "f-phone"}, "action": "show",
             "conditions": [
                 {"sourceId": "q1", "operator": "in", "value": 3},
                 {"sourceId": "q1", "operator": "gt", "value": "abc"},
             ]},
        ])
        paths = _paths(validate(doc))
        self.assertIn("logic.0.conditions.0.value", paths)
        self.assertIn("logic.0.conditions.1.value", paths)

    def test_source_must_be_collected_before_target(self):
        doc = make_payload(logic=[
            {"target": {"scope": "step", "id": "A"}, "action": "hide",
             "conditions": [{"sourceId": "email", "operator": "equals", "value": "x"}]},
            {"target": {"scope": "field", "id": "f-phone"}, "action": "show",
             "conditions": [{"sourceId": "email", "operator": "contains", "value": "@"}]},
        ])
        result = validate(doc)
        self.assertEqual(_paths(result), ["logic.0.conditions.0.sourceId", "logic.1.conditions.0.sourceId"])

    @override_settings(LEADFLOWS={"ENFORCE_LOGIC_ORDERING": False})
    def test_ordering_check_can_be_disabled(self):
        doc = make_payload(logic=[
            {"target": {"scope": "step", "id": "A"}, "action": "hide",
             "conditions": [{"sourceId": "email", "operator": "equals", "value": "x"}]},
        ])
        self.assertTrue(validate(doc).ok)

    def test_validate_or_raise(self):
        doc = make_payload(slug="")
        with self.assertRaises(FlowValidationError) as ctx:
            validate_or_raise(doc)
        self.assertIn("slug", [e.path for e in ctx.exception.errors])
        self.assertEqual(ctx.exception.as_list()[0]["path"], "slug")


class StepHelpersTests(SimpleTestCase):
    def test_normalize_step_order_is_stable(self):
        steps = [
            FlowStep(id="x", step_order=5, step_type="content", title="x", content="x"),
            FlowStep(id="y", step_order=1, step_type="content", title="y", content="y"),
            FlowStep(id="z", step_order=1, step_type="content", title="z", content="z"),
        ]
        normalized = normalize_step_order(steps)
        self.assertEqual([s.id for s in normalized], ["y", "z", "x"])
        self.assertEqual([s.step_order for s in normalized], [0, 1, 2])

    def test_every_step_type_has_a_kind(self):
        self.assertEqual(set(STEP_KINDS), set(STEP_TYPES))

    def test_create_default_step(self):
        step = create_default_step("thank_you", step_order=3)
        self.assertEqual(step.step_order, 3)
        self.assertEqual(step.step_type, "thank_you")
        self.assertTrue(step.title)
        self.assertEqual(STEP_KINDS["thank_you"].check(step), [])
        with self.assertRaises(KeyError):
            create_default_step("hologram")
