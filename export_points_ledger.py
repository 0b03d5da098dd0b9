"""
Export the points ledger (every PointsTransaction) to Excel.

    python export_points_ledger.py instance/points_ledger.xlsx
"""
import os
import sys

import pandas as pd
from storepromo import create_app
from storepromo.model import Customer, PointsTransaction

# Create an app instance
app = create_app()

with app.app_context():
    rows = (
        PointsTransaction.query
        .outerjoin(Customer, Customer.id == PointsTransaction.customer_id)
        .add_columns(Customer.email)
        .order_by(PointsTransaction.customer_id.asc(), PointsTransaction.id.asc())
        .all()
    )

    ledger = [
        {
            "ID": tx.id,
            "Customer ID": tx.customer_id,
            "Email": email,
            "Type": tx.type,
            "Amount": tx.amount,
            "Balance After": tx.balance_after,
            "Order ID": tx.order_id,
            "Reason": tx.reason,
            "Created By": tx.created_by,
            "Created At": tx.created_at,
        }
        for tx, email in rows
    ]

    df = pd.DataFrame(ledger)

    # Export to Excel
    excel_file_path = sys.argv[1] if len(sys.argv) > 1 else os.path.join(app.instance_path, "points_ledger.xlsx")
    df.to_excel(excel_file_path, index=False)

    print(f"{len(df)} ledger rows exported to Excel at {excel_file_path}")
