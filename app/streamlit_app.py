from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import streamlit as st

from connectors.inventory.client import INVENTORY_API_BASE_URL, INVENTORY_API_TOKEN
from connectors.inventory.products import get_product, submit_product
from services.preview import (
    apply_variants_frame,
    submission_messages,
    variant_statistics,
    variants_frame,
)
from services.reference_data import ReferenceData, load_reference_data
from services.tracing import CompositeObserver, LoggingObserver, TraceBuffer
from services.wizard import STEP_TITLES, WizardController, WizardStep
from utils.http import get_session


logger = logging.getLogger(__name__)

st.set_page_config(page_title="New product", page_icon="📦", layout="wide")


def _secret(name: str, default: str = "") -> str:
    try:
        value = st.secrets.get(name)
    except (FileNotFoundError, KeyError):
        value = None
    return str(value or os.environ.get(name) or default).strip()


BASE_URL = _secret("INVENTORY_API_BASE_URL", INVENTORY_API_BASE_URL).rstrip("/")
TOKEN = _secret("INVENTORY_API_TOKEN", INVENTORY_API_TOKEN)

st.session_state.setdefault("trace_buffer", TraceBuffer(maxlen=500))
st.session_state.setdefault("reference", ReferenceData.empty())
st.session_state.setdefault("reference_loaded", False)


def _session():
    if "http_session" not in st.session_state:
        st.session_state["http_session"] = get_session(TOKEN or None)
    return st.session_state["http_session"]


def _ensure_reference() -> ReferenceData:
    if not st.session_state["reference_loaded"] and BASE_URL:
        with st.spinner("Loading categories and attributes…"):
            st.session_state["reference"] = load_reference_data(_session(), BASE_URL)
        st.session_state["reference_loaded"] = True
    return st.session_state["reference"]


def _controller() -> WizardController:
    controller = st.session_state.get("wizard")
    if controller is not None:
        return controller
    reference = _ensure_reference()
    observer = CompositeObserver(LoggingObserver(), st.session_state["trace_buffer"])
    product_id = st.query_params.get("product_id")
    if product_id and BASE_URL:
        product = get_product(_session(), BASE_URL, int(product_id))
        controller = WizardController.from_product(
            product,
            categories=reference.categories,
            catalog=reference.catalog,
            observer=observer,
        )
    else:
        controller = WizardController(
            categories=reference.categories,
            catalog=reference.catalog,
            observer=observer,
        )
    st.session_state["wizard"] = controller
    return controller


def _show_errors(controller: WizardController, prefix: str = "") -> None:
    for field_name, message in controller.errors.items():
        if field_name.startswith(prefix):
            st.error(message)


def render_basic_info(controller: WizardController) -> None:
    info = controller.form.basic_info
    name = st.text_input("Product name", value=info.name, max_chars=100)
    description = st.text_area("Description", value=info.description, max_chars=1000)
    controller.update_basic_info(name=name, description=description)

    stages = controller.category_stages()
    if not stages[0].options:
        st.caption("Categories are loading or unavailable.")
    for stage in stages:
        none_label = "Uncategorised" if stage.level == 0 else f"Use “{stage.parent.name}”"
        labels = [none_label] + [opt.name for opt in stage.options]
        ids = [None] + [opt.id for opt in stage.options]
        current = stage.selected_id if stage.selected_id in ids else None
        index = ids.index(current)
        label = "Category" if stage.level == 0 else f"Subcategory of {stage.parent.name}"
        choice = st.selectbox(label, range(len(ids)), index=index,
                              format_func=lambda i, labels=labels: labels[i],
                              key=f"category_stage_{stage.level}")
        if ids[choice] != current:
            controller.select_category(stage.level, ids[choice])
            st.rerun()
    _show_errors(controller)


def render_specification(controller: WizardController) -> None:
    specs = controller.form.specifications
    is_variable = st.toggle("Multiple variants", value=specs.is_variable)
    if controller.set_variable(is_variable):
        st.rerun()
    if not specs.is_variable:
        st.info("Single-specification product: one SKU will be created.")
        return

    catalog = controller.catalog
    if not len(catalog):
        st.caption("Attributes are loading or unavailable.")
    for attribute in catalog.attributes():
        active = st.checkbox(attribute.name or f"Attribute {attribute.id}",
                             value=controller.selection.is_active(attribute.id),
                             key=f"attr_{attribute.id}")
        if controller.toggle_attribute(attribute.id, active):
            st.rerun()
        if not active:
            continue
        cols = st.columns([3, 1])
        new_value = cols[0].text_input("Add value", key=f"new_value_{attribute.id}")
        if cols[1].button("Add", key=f"add_{attribute.id}"):
            if not controller.add_value(attribute.id, new_value):
                st.warning("Value is empty, already present, or contains | or :")
            st.rerun()
        for value in controller.selection.values_for(attribute.id):
            if st.button(f"✕ {value}", key=f"rm_{attribute.id}_{value}"):
                controller.remove_value(attribute.id, value)
                st.rerun()

    st.write(f"Potential variants: {controller.potential_variant_count()}")
    if st.button("Generate variants", disabled=not controller.can_generate):
        controller.generate_variants()
        st.success(f"{len(controller.variants)} variants ready")
    _show_errors(controller)


def render_variants(controller: WizardController) -> None:
    cols = st.columns(3)
    bulk = cols[0].text_input("Price for all variants")
    if cols[1].button("Apply price") and not controller.apply_bulk_price(bulk):
        st.error(controller.errors.get("bulk_price", "Invalid price"))
    if cols[2].button("Regenerate all SKUs"):
        controller.fill_skus(overwrite=True)
    controller.fill_skus()

    df = variants_frame(controller.variants, controller.catalog)
    edited = st.data_editor(
        df,
        hide_index=True,
        disabled=[c for c in df.columns if c not in ("sku", "price")],
        column_config={"key": None},
        key="variants_editor",
    )
    apply_variants_frame(controller, edited)
    _show_errors(controller, prefix="variants.")


def render_preview(controller: WizardController) -> None:
    info = controller.form.basic_info
    st.subheader(info.name)
    st.write(info.description or "—")
    st.write("Category:", controller.categories.breadcrumb(info.category_id) or "Uncategorised")
    stats = variant_statistics(controller)
    cols = st.columns(3)
    cols[0].metric("Variants", stats["total_variants"])
    cols[1].metric("Average price", f"{stats['average_price']:.2f}")
    cols[2].metric("Attribute values", stats["total_attribute_values"])
    st.dataframe(variants_frame(controller.variants, controller.catalog), hide_index=True)

    label = "Update product" if controller.is_edit_mode else "Create product"
    if st.button(label, type="primary", disabled=controller.submitting or controller.completed):
        result, failed = submit_product(_session(), BASE_URL, controller)
        for attribute_id, value in failed:
            st.warning(f"Could not register value {value!r} for attribute {attribute_id}")
        for line in submission_messages(result):
            (st.success if result and result.ok else st.error)(line)


RENDERERS = {
    WizardStep.BASIC_INFO: render_basic_info,
    WizardStep.SPECIFICATION: render_specification,
    WizardStep.VARIANTS: render_variants,
    WizardStep.PREVIEW: render_preview,
}


def main() -> None:
    if not BASE_URL:
        st.error("INVENTORY_API_BASE_URL is not configured")
        return
    controller = _controller()
    reference: ReferenceData = st.session_state["reference"]
    for message in reference.errors.values():
        st.warning(message)

    st.title("Edit product" if controller.is_edit_mode else "New product")
    st.progress(int(controller.progress), text=STEP_TITLES[controller.step])
    RENDERERS[controller.step](controller)

    back, forward = st.columns(2)
    if back.button("Back", disabled=controller.step == WizardStep.BASIC_INFO):
        controller.prev_step()
        st.rerun()
    if controller.step != WizardStep.PREVIEW and forward.button("Next"):
        if controller.next_step():
            st.rerun()
        _show_errors(controller)

    with st.expander("Debug trace", expanded=False):
        st.json(st.session_state["trace_buffer"].events[-500:])


main()
