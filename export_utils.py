import csv
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Iterable, Sequence

from models import Transaction

EXPORT_FIELDS = (
    "id",
    "date",
    "description",
    "merchant",
    "amount",
    "currency",
    "category",
    "account",
    "status",
    "is_flagged",
)


def cents_to_amount(cents: int) -> float:
    return float(Decimal(cents) / 100)


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    clean = value.strip().replace("$", "").replace("€", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    cents = int((amount * 100).quantize(Decimal("1")))
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents


def transaction_record(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "date": txn.transaction_date.isoformat(),
        "description": txn.description,
        "merchant": txn.merchant,
        "amount": cents_to_amount(txn.amount_cents),
        "currency": txn.effective_currency,
        "category": txn.category_name or "Uncategorized",
        "account": txn.account_name or "Unknown",
        "status": txn.status.value,
        "is_flagged": bool(txn.is_flagged),
    }


def export_json(records: Sequence[dict[str, object]]) -> str:
    return json.dumps(list(records), indent=2)


def _csv_cell(field: str, value: object) -> str:
    if field == "amount":
        return f"{Decimal(str(value)):.2f}"
    if field == "is_flagged":
        return "true" if value else "false"
    return "" if value is None else str(value)


def export_csv(records: Iterable[dict[str, object]]) -> str:
    """CSV with a fixed header; cells containing commas, quotes or newlines
    are quoted and embedded quotes are doubled."""
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(EXPORT_FIELDS)
    for record in records:
        writer.writerow([_csv_cell(field, record.get(field)) for field in EXPORT_FIELDS])
    return output.getvalue()


def parse_export_csv(content: str) -> list[dict[str, object]]:
    reader = csv.DictReader(StringIO(content))
    missing = [f for f in EXPORT_FIELDS if f not in (reader.fieldnames or [])]
    if missing:
        raise ValueError(f"Missing columns: {', '.join(missing)}")
    rows: list[dict[str, object]] = []
    for idx, raw in enumerate(reader, start=1):
        try:
            rows.append(
                {
                    "id": int(raw["id"]),
                    "date": date.fromisoformat(raw["date"]).isoformat(),
                    "description": raw["description"],
                    "merchant": raw["merchant"],
                    "amount": cents_to_amount(
                        parse_amount(raw["amount"], allow_negative=True)
                    ),
                    "currency": raw["currency"],
                    "category": raw["category"],
                    "account": raw["account"],
                    "status": raw["status"],
                    "is_flagged": raw["is_flagged"].strip().lower() == "true",
                }
            )
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Row {idx}: {exc}") from exc
    return rows
