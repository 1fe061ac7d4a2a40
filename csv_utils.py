import csv
import re
from io import StringIO
from typing import Sequence

from amounts import round2
from models import Transaction
from schemas import CategoryReport, ReportSummary


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Type", "Amount", "Category", "Description"])
    for txn in transactions:
        writer.writerow(
            [
                txn.date.isoformat(sep=" "),
                txn.type.value,
                f"{round2(txn.amount):.2f}",
                sanitize_csv_value(txn.category.name if txn.category else ""),
                sanitize_csv_value(txn.description or ""),
            ]
        )
    return output.getvalue()


def export_report_summary(
    summary: ReportSummary, categories: Sequence[CategoryReport]
) -> str:
    """Render the dashboard report: period, totals, then the per-category table."""
    output = StringIO()
    writer = csv.writer(output)
    period = summary.period
    writer.writerow(["Personal Finance Report"])
    writer.writerow([])
    writer.writerow(
        [
            "Period",
            period.start_date.strftime("%Y-%m-%d"),
            period.end_date.strftime("%Y-%m-%d"),
        ]
    )
    writer.writerow([])
    writer.writerow(["Summary"])
    writer.writerow(["Total Income", f"{round2(summary.total_income):.2f}"])
    writer.writerow(["Total Expense", f"{round2(summary.total_expense):.2f}"])
    writer.writerow(["Net Amount", f"{round2(summary.net_amount):.2f}"])
    writer.writerow(["Transactions", summary.transactions_count])
    if categories:
        writer.writerow([])
        writer.writerow(["Category", "Type", "Amount", "Transactions"])
        for row in categories:
            writer.writerow(
                [
                    sanitize_csv_value(row.category_name),
                    row.type.value,
                    f"{round2(row.total_amount):.2f}",
                    row.transactions_count,
                ]
            )
    return output.getvalue()
