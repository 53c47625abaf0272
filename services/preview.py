"""Review-step summaries and tabular views of the variant drafts."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd

from services.attribute_selection import AttributeCatalog
from services.normalizers import clean_text, parse_price
from services.variants import VariantDraft
from services.wizard import SubmissionResult, WizardController
from utils.df_sanitize import editable_text_frame


KEY_COLUMN = "key"
SKU_COLUMN = "sku"
PRICE_COLUMN = "price"


def variant_statistics(controller: WizardController) -> Dict[str, Any]:
    """Return the figures shown on the preview step."""

    prices = [parse_price(draft.price) for draft in controller.variants]
    valid_prices = [price for price in prices if price is not None]
    total = float(sum(valid_prices))
    count = len(controller.variants)
    attribute_values = controller.form.specifications.attribute_values
    return {
        "total_variants": count,
        "total_value": total,
        "average_price": (total / count) if count else 0.0,
        "selected_attributes": len(attribute_values),
        "total_attribute_values": sum(len(values) for values in attribute_values.values()),
    }


def variants_frame(
    drafts: List[VariantDraft], catalog: Optional[AttributeCatalog] = None
) -> pd.DataFrame:
    """Return one row per draft: key, one column per attribute, sku, price."""

    catalog = catalog or AttributeCatalog()
    attribute_columns: List[str] = []
    rows: List[Dict[str, Any]] = []
    for draft in drafts:
        row: Dict[str, Any] = {KEY_COLUMN: draft.key}
        for option in draft.options:
            column = catalog.name_for(option.attribute_id)
            if column not in attribute_columns:
                attribute_columns.append(column)
            row[column] = option.value
        row[SKU_COLUMN] = draft.sku
        row[PRICE_COLUMN] = draft.price
        rows.append(row)
    columns = [KEY_COLUMN] + attribute_columns + [SKU_COLUMN, PRICE_COLUMN]
    df = pd.DataFrame(rows, columns=columns)
    return editable_text_frame(df, [SKU_COLUMN, PRICE_COLUMN])


def apply_variants_frame(controller: WizardController, df: pd.DataFrame) -> int:
    """Write edited ``sku``/``price`` cells back to the drafts by key."""

    changed = 0
    for record in df.to_dict(orient="records"):
        key = record.get(KEY_COLUMN)
        if not isinstance(key, str):
            continue
        draft = next((d for d in controller.variants if d.key == key), None)
        if draft is None:
            continue
        sku = clean_text(record.get(SKU_COLUMN))
        price = clean_text(record.get(PRICE_COLUMN))
        if sku == draft.sku and price == clean_text(draft.price):
            continue
        controller.update_variant(key, sku=sku, price=price)
        changed += 1
    return changed


def submission_messages(result: Optional[SubmissionResult]) -> List[str]:
    """Render a submission outcome as display lines, tolerating gaps."""

    if result is None:
        return []
    if result.ok:
        product = result.product or {}
        name = clean_text(product.get("name")) if isinstance(product, dict) else ""
        return [f"Product saved: {name}" if name else "Product saved"]
    lines: List[str] = []
    message = clean_text(result.message) or "Submission failed"
    lines.append(message)
    for field_name, messages in (result.field_errors or {}).items():
        for text in messages or []:
            lines.append(f"{field_name}: {text}")
    return lines
