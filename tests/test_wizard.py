import threading

import pytest

from services.attribute_selection import AttributeCatalog
from services.category_path import CategoryPathResolver
from services.tracing import TraceBuffer
from services.wizard import (
    SubmissionResult,
    WizardController,
    WizardStep,
)


CATALOG_ITEMS = [
    {
        "id": 1,
        "name": "Color",
        "values": [{"id": 11, "value": "Red"}, {"id": 12, "value": "Blue"}],
    },
    {
        "id": 2,
        "name": "Size",
        "values": [
            {"id": 21, "value": "S"},
            {"id": 22, "value": "M"},
            {"id": 23, "value": "L"},
        ],
    },
]

CATEGORIES = [
    {"id": 1, "name": "Apparel", "parent_id": None},
    {"id": 2, "name": "Shirts", "parent_id": 1},
    {"id": 3, "name": "T-Shirts", "parent_id": 2},
]


class RecordingSink:
    def __init__(self, result=None):
        self.calls = []
        self.result = result or SubmissionResult.success({"id": 99, "name": "T-Shirt"})

    def __call__(self, payload):
        self.calls.append(payload)
        return self.result


@pytest.fixture
def trace():
    return TraceBuffer()


@pytest.fixture
def wizard(trace):
    return WizardController(
        categories=CategoryPathResolver(CATEGORIES),
        catalog=AttributeCatalog.from_items(CATALOG_ITEMS),
        observer=trace,
    )


def _fill_basic(wizard):
    wizard.update_basic_info(name="T-Shirt", description="Cotton tee")
    wizard.select_category(0, 1)
    wizard.select_category(1, 2)
    wizard.select_category(2, 3)


def _variable_with_color_and_size(wizard):
    wizard.set_variable(True)
    wizard.toggle_attribute(1, True, use_catalog_defaults=False)
    wizard.add_value(1, "Red")
    wizard.add_value(1, "Blue")
    wizard.toggle_attribute(2, True, use_catalog_defaults=False)
    for value in ("S", "M", "L"):
        wizard.add_value(2, value)


def _to_preview(wizard):
    _fill_basic(wizard)
    assert wizard.next_step()
    _variable_with_color_and_size(wizard)
    assert wizard.generate_variants()
    assert wizard.next_step()
    for draft in wizard.variants:
        wizard.update_variant(draft.key, sku=f"TS-{draft.key}", price="10")
    assert wizard.next_step()
    assert wizard.step == WizardStep.PREVIEW


def test_initial_state(wizard):
    assert wizard.step == WizardStep.BASIC_INFO
    assert wizard.progress == 0
    assert [d.key for d in wizard.variants] == ["single"]
    assert not wizard.is_edit_mode


@pytest.mark.parametrize(
    "name, description, field",
    [
        ("", "", "name"),
        ("   ", "", "name"),
        ("A", "", "name"),
        ("x" * 101, "", "name"),
        ("Valid", "d" * 1001, "description"),
    ],
)
def test_basic_info_validation_blocks_forward(wizard, name, description, field):
    wizard.update_basic_info(name=name, description=description)
    assert not wizard.next_step()
    assert wizard.step == WizardStep.BASIC_INFO
    assert field in wizard.errors


def test_basic_info_boundaries_are_valid(wizard):
    wizard.update_basic_info(name=" Ab ", description="d" * 1000)
    assert wizard.is_step_valid(WizardStep.BASIC_INFO)
    wizard.update_basic_info(name="x" * 100)
    assert wizard.next_step()
    assert wizard.step == WizardStep.SPECIFICATION


def test_unreachable_category_is_rejected(wizard):
    wizard.update_basic_info(name="Shirt")
    wizard.form.basic_info.category_id = 404
    assert "category_id" in wizard.validate_step(WizardStep.BASIC_INFO)


def test_category_check_waits_for_categories_to_load():
    wizard = WizardController()
    wizard.update_basic_info(name="Shirt")
    wizard.form.basic_info.category_id = 3
    assert wizard.is_step_valid(WizardStep.BASIC_INFO)
    wizard.set_reference_data(categories=CategoryPathResolver(CATEGORIES))
    assert wizard.category_path == [1, 2, 3]


def test_category_selection_none_uses_parent(wizard):
    _fill_basic(wizard)
    assert wizard.form.basic_info.category_id == 3
    assert len(wizard.category_stages()) == 3
    assert wizard.select_category(2, None) == 2
    assert wizard.category_path == [1, 2]
    assert wizard.select_category(0, None) is None
    assert wizard.category_path == []


def test_end_to_end_specification_and_variants_gating(wizard):
    _fill_basic(wizard)
    assert wizard.next_step()
    _variable_with_color_and_size(wizard)

    assert not wizard.is_step_valid(WizardStep.SPECIFICATION)
    assert not wizard.next_step()
    assert "variants" in wizard.errors

    assert wizard.generate_variants()
    assert len(wizard.variants) == 6
    assert wizard.variants[0].key == "1:Red|2:S"
    assert wizard.is_step_valid(WizardStep.SPECIFICATION)
    assert wizard.next_step()
    assert wizard.step == WizardStep.VARIANTS

    for draft in wizard.variants[:5]:
        wizard.update_variant(draft.key, sku=f"TS-{draft.key}", price="10")
    assert not wizard.next_step()
    last = wizard.variants[5].key
    assert f"variants.{last}.sku" in wizard.errors

    wizard.update_variant(last, sku="TS-last", price="-1")
    assert not wizard.is_step_valid()
    wizard.update_variant(last, price="0")
    assert wizard.next_step()
    assert wizard.step == WizardStep.PREVIEW
    assert wizard.progress == 100


def test_any_mutation_makes_specification_dirty(wizard):
    _variable_with_color_and_size(wizard)
    wizard.generate_variants()
    assert wizard.is_step_valid(WizardStep.SPECIFICATION)
    wizard.remove_value(2, "M")
    assert not wizard.is_step_valid(WizardStep.SPECIFICATION)
    wizard.generate_variants()
    assert len(wizard.variants) == 4


def test_noop_mutations_do_not_dirty(wizard):
    _variable_with_color_and_size(wizard)
    wizard.generate_variants()
    assert not wizard.add_value(1, "Red")
    assert not wizard.add_value(1, "  ")
    assert not wizard.remove_value(1, "Green")
    assert not wizard.toggle_attribute(1, True)
    assert wizard.is_step_valid(WizardStep.SPECIFICATION)


def test_generate_refused_when_gate_closed(wizard):
    wizard.set_variable(True)
    assert not wizard.can_generate
    assert not wizard.generate_variants()
    wizard.toggle_attribute(1, True, use_catalog_defaults=False)
    assert not wizard.can_generate
    assert "values" in wizard.validate_step(WizardStep.SPECIFICATION)


def test_toggle_seeds_catalog_defaults(wizard):
    wizard.set_variable(True)
    wizard.toggle_attribute(2, True)
    assert wizard.selection.values_for(2) == ["S", "M", "L"]


def test_switching_off_variable_mode_restores_single(wizard):
    _variable_with_color_and_size(wizard)
    wizard.generate_variants()
    assert wizard.set_variable(False)
    assert wizard.selection.selected_attribute_ids == []
    assert [d.key for d in wizard.variants] == ["single"]
    assert wizard.is_step_valid(WizardStep.SPECIFICATION)


def test_back_is_always_allowed(wizard):
    _fill_basic(wizard)
    wizard.next_step()
    wizard.set_variable(True)
    assert not wizard.is_step_valid()
    assert wizard.prev_step()
    assert wizard.step == WizardStep.BASIC_INFO
    assert not wizard.prev_step()


def test_no_jump_past_one_step(wizard):
    _fill_basic(wizard)
    wizard.next_step()
    wizard.next_step()
    assert wizard.step == WizardStep.VARIANTS
    assert wizard.progress == pytest.approx(200 / 3)


def test_bulk_price_and_skus(wizard):
    _variable_with_color_and_size(wizard)
    wizard.update_basic_info(name="Tee")
    wizard.generate_variants()
    assert not wizard.apply_bulk_price("abc")
    assert "bulk_price" in wizard.errors
    assert wizard.apply_bulk_price("15")
    assert wizard.fill_skus() == 6
    assert wizard.variants[0].sku == "TEE-RES-001"
    assert wizard.is_step_valid(WizardStep.VARIANTS)


def test_payload_shape(wizard):
    _to_preview(wizard)
    payload = wizard.build_payload()
    assert payload["name"] == "T-Shirt"
    assert payload["category_id"] == 3
    assert payload["attributes"] == [1, 2]
    assert len(payload["variants"]) == 6
    assert payload["variants"][0] == {
        "sku": "TS-1:Red|2:S",
        "price": 10.0,
        "attribute_value_ids": [11, 21],
    }


def test_submit_success(wizard, trace):
    _to_preview(wizard)
    sink = RecordingSink()
    result = wizard.submit(sink)
    assert result.ok
    assert len(sink.calls) == 1
    assert wizard.completed
    assert wizard.product_id == 99
    assert not wizard.submitting
    assert any(e["where"] == "submit" and e["ok"] for e in trace.events)


def test_submit_failure_keeps_draft_on_preview(wizard):
    _to_preview(wizard)
    sink = RecordingSink(
        SubmissionResult.failure("The given data was invalid.", {"variants.0.sku": ["Taken"]})
    )
    result = wizard.submit(sink)
    assert not result.ok
    assert wizard.step == WizardStep.PREVIEW
    assert wizard.submission_error is result
    assert wizard.errors == {"variants.0.sku": "Taken"}
    assert len(wizard.variants) == 6
    assert not wizard.submitting

    sink.result = SubmissionResult.success({"id": 5})
    assert wizard.submit(sink).ok
    assert len(sink.calls) == 2


def test_submit_sink_exception_becomes_failure(wizard):
    _to_preview(wizard)

    def broken(payload):
        raise ConnectionError("boom")

    result = wizard.submit(broken)
    assert not result.ok
    assert "boom" in result.message
    assert not wizard.submitting


def test_reentrant_submit_does_not_call_sink_twice(wizard):
    _to_preview(wizard)
    calls = []
    nested = []

    def sink(payload):
        calls.append(payload)
        nested.append(wizard.submit(sink))
        return SubmissionResult.success({"id": 1})

    assert wizard.submit(sink).ok
    assert len(calls) == 1
    assert nested == [None]


def test_concurrent_submit_is_guarded(wizard):
    _to_preview(wizard)
    entered = threading.Event()
    release = threading.Event()
    calls = []

    def slow_sink(payload):
        calls.append(payload)
        entered.set()
        release.wait(timeout=5)
        return SubmissionResult.success({"id": 1})

    worker = threading.Thread(target=wizard.submit, args=(slow_sink,))
    worker.start()
    assert entered.wait(timeout=5)
    assert wizard.submit(slow_sink) is None
    release.set()
    worker.join(timeout=5)
    assert len(calls) == 1
    assert not wizard.submitting


def test_submit_outside_preview_is_ignored(wizard):
    sink = RecordingSink()
    assert wizard.submit(sink) is None
    assert sink.calls == []


def test_submit_with_unknown_value_reports_validation_error(wizard):
    _to_preview(wizard)
    wizard.prev_step()
    wizard.prev_step()
    wizard.add_value(1, "Green")
    wizard.generate_variants()
    wizard.next_step()
    for draft in wizard.variants:
        wizard.update_variant(draft.key, sku=f"S-{draft.key}", price="1")
    wizard.next_step()
    sink = RecordingSink()
    result = wizard.submit(sink)
    assert not result.ok
    assert "variants" in result.field_errors
    assert sink.calls == []


def test_from_product_restores_draft():
    product = {
        "data": {
            "id": 8,
            "name": "Hoodie",
            "description": "Warm",
            "category_id": 2,
            "attributes": [{"id": 1, "name": "Color"}, {"id": 2, "name": "Size"}],
            "variants": [
                {
                    "sku": "H-RS",
                    "price": "30.00",
                    "attribute_values": [
                        {"id": 11, "attribute_id": 1, "value": "Red"},
                        {"id": 21, "attribute_id": 2, "value": "S"},
                    ],
                },
                {
                    "sku": "H-RM",
                    "price": 32,
                    "attribute_values": [
                        {"id": 11, "attribute_id": 1, "value": "Red"},
                        {"id": 22, "attribute": {"id": 2}, "value": "M"},
                    ],
                },
            ],
        }
    }
    wizard = WizardController.from_product(product, categories=CategoryPathResolver(CATEGORIES))
    assert wizard.is_edit_mode
    assert wizard.product_id == 8
    assert wizard.category_path == [1, 2]
    assert wizard.form.specifications.is_variable
    assert wizard.selection.attribute_values == {1: ["Red"], 2: ["S", "M"]}
    assert [d.key for d in wizard.variants] == ["1:Red|2:S", "1:Red|2:M"]
    assert [d.price for d in wizard.variants] == ["30", "32"]
    assert wizard.is_step_valid(WizardStep.SPECIFICATION)

    wizard.generate_variants()
    assert [d.sku for d in wizard.variants] == ["H-RS", "H-RM"]
    assert wizard.catalog.value_id(2, "M") == 22


def test_from_product_without_attributes():
    wizard = WizardController.from_product(
        {"id": 3, "name": "Mug", "variants": [{"sku": "MUG001", "price": 5, "attribute_values": []}]}
    )
    assert not wizard.form.specifications.is_variable
    assert [(d.key, d.sku, d.price) for d in wizard.variants] == [("single", "MUG001", "5")]


def test_from_product_in_orphan_category_keeps_selection():
    categories = CategoryPathResolver(
        CATEGORIES + [{"id": 7, "name": "Clearance", "parent_id": 99}]
    )
    wizard = WizardController.from_product(
        {"id": 4, "name": "Cap", "category_id": 7}, categories=categories
    )
    stage = wizard.category_stages()[0]
    assert stage.selected_id == 7
    assert 7 in [c.id for c in stage.options]
    assert wizard.is_step_valid(WizardStep.BASIC_INFO)
    assert wizard.form.basic_info.category_id == 7


def test_concurrent_submit_is_guarded_during_validation(wizard, monkeypatch):
    _to_preview(wizard)
    entered = threading.Event()
    release = threading.Event()
    original = wizard.validate_step

    def slow_validate(step=None):
        entered.set()
        release.wait(timeout=5)
        return original(step)

    monkeypatch.setattr(wizard, "validate_step", slow_validate)
    sink = RecordingSink()
    worker = threading.Thread(target=wizard.submit, args=(sink,))
    worker.start()
    assert entered.wait(timeout=5)
    assert wizard.submitting
    assert wizard.submit(sink) is None
    release.set()
    worker.join(timeout=5)
    assert len(sink.calls) == 1
    assert not wizard.submitting
