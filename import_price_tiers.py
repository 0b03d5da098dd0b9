"""
Import bulk price tiers from Excel.

Columns: SKU, Currency, Amount (minor units), Min Quantity, Max Quantity.
Existing tiers of a variant/currency with the same Min Quantity are updated.

    python import_price_tiers.py instance/price_tiers.xlsx
"""
import os
import sys

import pandas as pd
from storepromo import create_app
from storepromo.extensions import db
from storepromo.model import Price, ProductVariant


def _int_or_none(value):
    if pd.isna(value):
        return None
    return int(value)


# Create an app instance
app = create_app()

with app.app_context():
    excel_file_path = sys.argv[1] if len(sys.argv) > 1 else os.path.join(app.instance_path, "price_tiers.xlsx")
    df = pd.read_excel(excel_file_path)

    # Clean column names (remove extra spaces)
    df.columns = df.columns.str.strip()

    created = updated = skipped = 0
    for _, row in df.iterrows():
        variant = ProductVariant.query.filter_by(sku=str(row["SKU"]).strip()).first()
        if not variant:
            print(f"Unknown SKU {row['SKU']!r}, skipped")
            skipped += 1
            continue

        currency = row.get("Currency")
        if currency is None or pd.isna(currency):
            currency = app.config["STORE_DEFAULT_CURRENCY"]
        currency = str(currency).strip().lower()
        min_qty = _int_or_none(row.get("Min Quantity"))
        price = Price.query.filter_by(variant_id=variant.id, currency_code=currency, min_quantity=min_qty).first()
        if price is None:
            price = Price(variant_id=variant.id, currency_code=currency, min_quantity=min_qty)
            db.session.add(price)
            created += 1
        else:
            updated += 1
        price.amount = int(row["Amount"])
        price.max_quantity = _int_or_none(row.get("Max Quantity"))

    db.session.commit()

    print(f"{created} tiers created, {updated} updated, {skipped} skipped from {excel_file_path}")
