"""CSV export of the ledger."""

import csv
import io

from finan_ai.models.finance import Category, Transaction


EXPORT_HEADER = ["Date", "Description", "Amount", "Type", "Category"]


def export_transactions_csv(
    transactions: list[Transaction],
    categories: list[Category],
) -> str:
    """
    Render transactions as CSV text, one row per transaction.

    Rows keep the given order. Unknown category ids export as
    'Uncategorized'.
    """
    names = {c.id: c.name for c in categories}
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for tx in transactions:
        writer.writerow([
            tx.date.isoformat(),
            tx.description,
            f"{tx.amount:.2f}",
            tx.type.value,
            names.get(tx.category_id, "Uncategorized"),
        ])
    return buffer.getvalue()
