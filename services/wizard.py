"""Four-step product creation wizard: state machine, validation, submission."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from services.attribute_selection import AttributeCatalog, AttributeSelectionStore
from services.category_path import CategoryPathResolver
from services.normalizers import clean_text, coerce_int, format_price, is_valid_price, parse_price
from services.tracing import WizardObserver, timed
from services import variants as variant_ops
from services.variants import VariantDraft, VariantOption


_LOGGER = logging.getLogger(__name__)

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000


class WizardStep(IntEnum):
    BASIC_INFO = 0
    SPECIFICATION = 1
    VARIANTS = 2
    PREVIEW = 3


STEP_TITLES = {
    WizardStep.BASIC_INFO: "Basic info",
    WizardStep.SPECIFICATION: "Specification",
    WizardStep.VARIANTS: "Variants",
    WizardStep.PREVIEW: "Preview",
}

# (current step, current step valid) -> next step
_FORWARD: Dict[Tuple[WizardStep, bool], WizardStep] = {
    (WizardStep.BASIC_INFO, True): WizardStep.SPECIFICATION,
    (WizardStep.BASIC_INFO, False): WizardStep.BASIC_INFO,
    (WizardStep.SPECIFICATION, True): WizardStep.VARIANTS,
    (WizardStep.SPECIFICATION, False): WizardStep.SPECIFICATION,
    (WizardStep.VARIANTS, True): WizardStep.PREVIEW,
    (WizardStep.VARIANTS, False): WizardStep.VARIANTS,
    (WizardStep.PREVIEW, True): WizardStep.PREVIEW,
    (WizardStep.PREVIEW, False): WizardStep.PREVIEW,
}

_BACKWARD: Dict[WizardStep, WizardStep] = {
    WizardStep.BASIC_INFO: WizardStep.BASIC_INFO,
    WizardStep.SPECIFICATION: WizardStep.BASIC_INFO,
    WizardStep.VARIANTS: WizardStep.SPECIFICATION,
    WizardStep.PREVIEW: WizardStep.VARIANTS,
}


@dataclass
class BasicInfo:
    name: str = ""
    description: str = ""
    category_id: Optional[int] = None


@dataclass
class Specifications:
    is_variable: bool = False
    selection: AttributeSelectionStore = field(default_factory=AttributeSelectionStore)

    @property
    def selected_attribute_ids(self) -> List[int]:
        return self.selection.selected_attribute_ids

    @property
    def attribute_values(self) -> Dict[int, List[str]]:
        return self.selection.attribute_values


@dataclass
class VariantsSection:
    items: List[VariantDraft] = field(default_factory=list)


@dataclass
class WizardFormData:
    basic_info: BasicInfo = field(default_factory=BasicInfo)
    specifications: Specifications = field(default_factory=Specifications)
    variants: VariantsSection = field(default_factory=VariantsSection)


@dataclass
class SubmissionResult:
    ok: bool
    product: Optional[Dict[str, Any]] = None
    message: str = ""
    field_errors: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def success(cls, product: Optional[Dict[str, Any]] = None) -> "SubmissionResult":
        return cls(ok=True, product=product)

    @classmethod
    def failure(
        cls, message: str, field_errors: Optional[Dict[str, List[str]]] = None
    ) -> "SubmissionResult":
        return cls(ok=False, message=message, field_errors=dict(field_errors or {}))


SubmissionSink = Callable[[Dict[str, Any]], SubmissionResult]


class UnresolvedValueError(ValueError):
    """Raised when a variant value has no catalogue value id."""

    def __init__(self, missing: List[Tuple[int, str]]):
        self.missing = missing
        listed = ", ".join(f"{attr_id}:{value}" for attr_id, value in missing)
        super().__init__(f"Attribute values without catalogue id: {listed}")


class WizardController:
    """Own the wizard draft, step validity and transitions.

    Mutations happen synchronously on the caller's thread. Attribute and value
    changes mark the specification dirty; only an explicit
    :meth:`generate_variants` call rebuilds the variant list and clears it.
    """

    def __init__(
        self,
        form: Optional[WizardFormData] = None,
        *,
        categories: Optional[CategoryPathResolver] = None,
        catalog: Optional[AttributeCatalog] = None,
        observer: Optional[WizardObserver] = None,
        product_id: Optional[int] = None,
    ):
        self.form = form or WizardFormData()
        self.categories = categories if categories is not None else CategoryPathResolver()
        self.catalog = catalog if catalog is not None else AttributeCatalog()
        self.observer = observer or WizardObserver()
        self.product_id = product_id

        self.step = WizardStep.BASIC_INFO
        self.errors: Dict[str, str] = {}
        self.dirty = self.form.specifications.is_variable
        self._submit_lock = threading.Lock()
        self.submission_error: Optional[SubmissionResult] = None
        self.completed = False
        if not self.form.specifications.is_variable and not self.form.variants.items:
            self.form.variants.items = variant_ops.single_variant()
        self.category_path: List[int] = self.categories.path_for(
            self.form.basic_info.category_id
        )

    # -- helpers ---------------------------------------------------------

    def _emit(self, where: str, **fields: Any) -> None:
        self.observer.on_event({"where": where, "step": self.step.name, **fields})

    def _mark_dirty(self, where: str, **fields: Any) -> None:
        self.dirty = True
        self._emit(where, **fields)

    @property
    def selection(self) -> AttributeSelectionStore:
        return self.form.specifications.selection

    @property
    def variants(self) -> List[VariantDraft]:
        return self.form.variants.items

    @property
    def is_edit_mode(self) -> bool:
        return self.product_id is not None

    @property
    def submitting(self) -> bool:
        """True while a submit, including its validation, is in progress."""

        return self._submit_lock.locked()

    def set_reference_data(
        self,
        *,
        categories: Optional[CategoryPathResolver] = None,
        catalog: Optional[AttributeCatalog] = None,
    ) -> None:
        """Swap in reference data that finished loading, in any order."""

        if categories is not None:
            self.categories = categories
            self.category_path = categories.path_for(self.form.basic_info.category_id)
        if catalog is not None:
            self.catalog = catalog

    # -- basic info ------------------------------------------------------

    def update_basic_info(
        self, *, name: Optional[str] = None, description: Optional[str] = None
    ) -> None:
        info = self.form.basic_info
        if name is not None:
            info.name = str(name)
            self.errors.pop("name", None)
        if description is not None:
            info.description = str(description)
            self.errors.pop("description", None)

    def category_stages(self):
        return self.categories.stages(self.category_path)

    def select_category(self, level: int, category_id: Optional[int]) -> Optional[int]:
        path, selected = self.categories.select(self.category_path, level, category_id)
        self.category_path = path
        self.form.basic_info.category_id = selected
        self.errors.pop("category_id", None)
        self._emit("basic:category", level=level, category_id=selected)
        return selected

    # -- specification ---------------------------------------------------

    def set_variable(self, is_variable: bool) -> bool:
        specs = self.form.specifications
        if specs.is_variable == bool(is_variable):
            return False
        specs.is_variable = bool(is_variable)
        if specs.is_variable:
            self.form.variants.items = []
            self._mark_dirty("spec:variable", is_variable=True)
        else:
            specs.selection.clear()
            self.form.variants.items = variant_ops.single_variant(self.variants)
            self.dirty = False
            self._emit("spec:variable", is_variable=False)
        return True

    def toggle_attribute(
        self, attribute_id: int, active: bool, use_catalog_defaults: bool = True
    ) -> bool:
        seeds = self.catalog.default_values(attribute_id) if (active and use_catalog_defaults) else None
        changed = self.selection.toggle_attribute(attribute_id, active, seed_values=seeds)
        if changed:
            self._mark_dirty("spec:toggle", attribute_id=attribute_id, active=active)
        return changed

    def add_value(self, attribute_id: int, raw_value: Any) -> bool:
        changed = self.selection.add_value(attribute_id, raw_value)
        if changed:
            self._mark_dirty("spec:add_value", attribute_id=attribute_id)
        return changed

    def remove_value(self, attribute_id: int, value: str) -> bool:
        changed = self.selection.remove_value(attribute_id, value)
        if changed:
            self._mark_dirty("spec:remove_value", attribute_id=attribute_id)
        return changed

    @property
    def can_generate(self) -> bool:
        if not self.form.specifications.is_variable:
            return True
        return variant_ops.can_generate(self.selection.axes())

    def potential_variant_count(self) -> int:
        if not self.form.specifications.is_variable:
            return 1
        return self.selection.potential_variant_count()

    def generate_variants(self) -> bool:
        """Rebuild the variant list, keeping edits of surviving combinations."""

        if not self.can_generate:
            self.errors["attributes"] = (
                "Select at least one attribute and give every selected attribute a value"
            )
            return False
        with timed(self.observer, "spec:generate") as extra:
            if self.form.specifications.is_variable:
                items = variant_ops.generate_variants(self.selection.axes(), self.variants)
            else:
                items = variant_ops.single_variant(self.variants)
            self.form.variants.items = items
            extra["count"] = len(items)
        self.dirty = False
        for key in ("attributes", "values", "variants"):
            self.errors.pop(key, None)
        return True

    # -- variants --------------------------------------------------------

    def update_variant(self, key: str, *, sku: Optional[str] = None, price: Any = None) -> bool:
        changed = variant_ops.update_draft(self.variants, key, sku=sku, price=price)
        if changed:
            if sku is not None:
                self.errors.pop(f"variants.{key}.sku", None)
            if price is not None:
                self.errors.pop(f"variants.{key}.price", None)
        return changed

    def apply_bulk_price(self, price: Any) -> bool:
        try:
            variant_ops.apply_bulk_price(self.variants, price)
        except ValueError as exc:
            self.errors["bulk_price"] = str(exc)
            return False
        self.errors.pop("bulk_price", None)
        self._emit("variants:bulk_price", count=len(self.variants))
        return True

    def fill_skus(self, overwrite: bool = False) -> int:
        return variant_ops.fill_auto_skus(
            self.variants, self.form.basic_info.name, overwrite=overwrite
        )

    # -- validation ------------------------------------------------------

    def _validate_basic_info(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        info = self.form.basic_info
        name = clean_text(info.name)
        if not name:
            errors["name"] = "Product name is required"
        elif len(name) < NAME_MIN_LENGTH:
            errors["name"] = f"Product name must be at least {NAME_MIN_LENGTH} characters"
        elif len(name) > NAME_MAX_LENGTH:
            errors["name"] = f"Product name must be at most {NAME_MAX_LENGTH} characters"
        if len(info.description or "") > DESCRIPTION_MAX_LENGTH:
            errors["description"] = (
                f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters"
            )
        # An empty resolver means categories are still loading.
        if (
            info.category_id is not None
            and len(self.categories)
            and not self.categories.is_reachable(info.category_id)
        ):
            errors["category_id"] = "Selected category is not available"
        return errors

    def _validate_specification(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        if not self.form.specifications.is_variable:
            return errors
        if not self.selection.selected_attribute_ids:
            errors["attributes"] = "Select at least one attribute"
        elif self.dirty:
            if variant_ops.can_generate(self.selection.axes()):
                errors["variants"] = "Generate variants to apply the latest changes"
            else:
                errors["values"] = "Every selected attribute needs at least one value"
        return errors

    def _validate_variants(self) -> Dict[str, str]:
        errors: Dict[str, str] = {}
        for draft in self.variants:
            if not clean_text(draft.sku):
                errors[f"variants.{draft.key}.sku"] = "SKU is required"
            if not is_valid_price(draft.price):
                errors[f"variants.{draft.key}.price"] = "Price must be a non-negative number"
        return errors

    def validate_step(self, step: Optional[WizardStep] = None) -> Dict[str, str]:
        step = self.step if step is None else WizardStep(step)
        if step == WizardStep.BASIC_INFO:
            return self._validate_basic_info()
        if step == WizardStep.SPECIFICATION:
            return self._validate_specification()
        if step == WizardStep.VARIANTS:
            return self._validate_variants()
        errors: Dict[str, str] = {}
        errors.update(self._validate_basic_info())
        errors.update(self._validate_specification())
        errors.update(self._validate_variants())
        return errors

    def is_step_valid(self, step: Optional[WizardStep] = None) -> bool:
        return not self.validate_step(step)

    # -- navigation ------------------------------------------------------

    def next_step(self) -> bool:
        errors = self.validate_step(self.step)
        target = _FORWARD[(self.step, not errors)]
        self.errors = errors
        if target == self.step:
            if errors:
                self._emit("nav:blocked", fields=sorted(errors))
            return False
        self._emit("nav:next", target=target.name)
        self.step = target
        return True

    def prev_step(self) -> bool:
        target = _BACKWARD[self.step]
        if target == self.step:
            return False
        self._emit("nav:back", target=target.name)
        self.step = target
        self.errors = {}
        return True

    @property
    def progress(self) -> float:
        return 100.0 * int(self.step) / (len(WizardStep) - 1)

    # -- submission ------------------------------------------------------

    def build_payload(self) -> Dict[str, Any]:
        info = self.form.basic_info
        specs = self.form.specifications
        missing: List[Tuple[int, str]] = []
        variants_payload: List[Dict[str, Any]] = []
        for draft in self.variants:
            value_ids: List[int] = []
            for option in draft.options:
                value_id = self.catalog.value_id(option.attribute_id, option.value)
                if value_id is None:
                    if (option.attribute_id, option.value) not in missing:
                        missing.append((option.attribute_id, option.value))
                    continue
                value_ids.append(value_id)
            variants_payload.append(
                {
                    "sku": clean_text(draft.sku),
                    "price": parse_price(draft.price),
                    "attribute_value_ids": value_ids,
                }
            )
        if missing:
            raise UnresolvedValueError(missing)
        return {
            "name": clean_text(info.name),
            "description": info.description or "",
            "category_id": info.category_id,
            "attributes": specs.selected_attribute_ids if specs.is_variable else [],
            "variants": variants_payload,
        }

    def submit(self, sink: SubmissionSink) -> Optional[SubmissionResult]:
        """Hand the payload to ``sink`` once; ``None`` when a submit is in flight."""

        if not self._submit_lock.acquire(blocking=False):
            self._emit("submit:skipped")
            return None
        try:
            return self._submit_locked(sink)
        finally:
            self._submit_lock.release()

    def _submit_locked(self, sink: SubmissionSink) -> Optional[SubmissionResult]:
        if self.step != WizardStep.PREVIEW:
            _LOGGER.warning("submit called outside the preview step (%s)", self.step.name)
            return None

        errors = self.validate_step(WizardStep.PREVIEW)
        if not errors:
            try:
                payload = self.build_payload()
            except UnresolvedValueError as exc:
                errors = {"variants": str(exc)}
        if errors:
            self.errors = errors
            result = SubmissionResult.failure(
                "Fix the highlighted fields before submitting",
                {key: [message] for key, message in errors.items()},
            )
            self.submission_error = result
            return result

        self.submission_error = None
        with timed(self.observer, "submit", edit=self.is_edit_mode) as extra:
            try:
                result = sink(payload)
            except Exception as exc:
                _LOGGER.exception("Product submission sink failed")
                result = SubmissionResult.failure(f"Submission failed: {exc}")
            extra["ok"] = result.ok

        if result.ok:
            self.completed = True
            self.errors = {}
            product_id = coerce_int((result.product or {}).get("id"))
            if product_id is not None:
                self.product_id = product_id
        else:
            self.submission_error = result
            self.errors = {
                key: messages[0] for key, messages in result.field_errors.items() if messages
            }
        return result

    # -- edit mode -------------------------------------------------------

    @classmethod
    def from_product(
        cls,
        product: Mapping[str, Any],
        *,
        categories: Optional[CategoryPathResolver] = None,
        catalog: Optional[AttributeCatalog] = None,
        observer: Optional[WizardObserver] = None,
    ) -> "WizardController":
        """Build a controller pre-filled from a product detail payload."""

        if isinstance(product.get("data"), Mapping):
            product = product["data"]
        if catalog is None:
            catalog = AttributeCatalog()

        attribute_order: List[int] = []
        for raw_attr in product.get("attributes") or []:
            attr_id = coerce_int(raw_attr.get("id") if isinstance(raw_attr, Mapping) else raw_attr)
            if attr_id is not None and attr_id not in attribute_order:
                attribute_order.append(attr_id)

        parsed_variants: List[Tuple[Dict[int, str], Any, Any]] = []
        for raw_variant in product.get("variants") or []:
            if not isinstance(raw_variant, Mapping):
                continue
            values: Dict[int, str] = {}
            for raw_value in raw_variant.get("attribute_values") or []:
                if not isinstance(raw_value, Mapping):
                    continue
                attr_id = coerce_int(raw_value.get("attribute_id"))
                if attr_id is None and isinstance(raw_value.get("attribute"), Mapping):
                    attr_id = coerce_int(raw_value["attribute"].get("id"))
                text = clean_text(raw_value.get("value"))
                if attr_id is None or not text:
                    continue
                if variant_ops.KEY_SEPARATOR in text or variant_ops.PAIR_SEPARATOR in text:
                    _LOGGER.warning("Skipping attribute value %r with key separators", text)
                    continue
                values[attr_id] = text
                if attr_id not in attribute_order:
                    attribute_order.append(attr_id)
                value_id = coerce_int(raw_value.get("id"))
                if value_id is not None:
                    catalog.register_value(attr_id, value_id, text)
            parsed_variants.append((values, raw_variant.get("sku"), raw_variant.get("price")))

        form = WizardFormData(
            basic_info=BasicInfo(
                name=clean_text(product.get("name")),
                description=str(product.get("description") or ""),
                category_id=coerce_int(product.get("category_id")),
            )
        )
        is_variable = bool(attribute_order) and any(values for values, _s, _p in parsed_variants)
        form.specifications.is_variable = is_variable

        items: List[VariantDraft] = []
        if is_variable:
            selection = form.specifications.selection
            for attr_id in attribute_order:
                selection.toggle_attribute(attr_id, True)
            for values, _sku, _price in parsed_variants:
                for attr_id in attribute_order:
                    if attr_id in values:
                        selection.add_value(attr_id, values[attr_id])
            for values, sku, price in parsed_variants:
                options = [
                    VariantOption(attribute_id=attr_id, value=values[attr_id])
                    for attr_id in attribute_order
                    if attr_id in values
                ]
                items.append(
                    VariantDraft(
                        key=variant_ops.variant_key(options),
                        options=options,
                        sku=clean_text(sku),
                        price=format_price(price),
                    )
                )
        elif parsed_variants:
            _values, sku, price = parsed_variants[0]
            items.append(
                VariantDraft(
                    key=variant_ops.SINGLE_VARIANT_KEY,
                    sku=clean_text(sku),
                    price=format_price(price),
                )
            )
        form.variants.items = items

        controller = cls(
            form,
            categories=categories,
            catalog=catalog,
            observer=observer,
            product_id=coerce_int(product.get("id")),
        )
        controller.dirty = False
        return controller
