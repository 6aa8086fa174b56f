"""Revenue summaries and CSV export over the transactions table."""

from __future__ import annotations

import csv
import io
from datetime import date, datetime, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Optional

from sahasrara_spa.models import SEX_TO_EXTERNAL, TREATMENT_TYPES
from sahasrara_spa.util.time import parse_iso

from .crud import fetch_matching


CSV_HEADERS = [
    "No",
    "Nama Bayi",
    "Umur",
    "Jenis Kelamin",
    "Berat Badan (kg)",
    "Panjang Badan (cm)",
    "Nama Ortu",
    "Alamat",
    "Tindakan",
    "Biaya (Rp)",
    "Keterangan",
    "Tanggal",
]


def summarize(
    rows: Iterable[Any],
    *,
    today: Optional[date] = None,
    tz: tzinfo = timezone.utc,
) -> Dict[str, Any]:
    """Revenue and counts, overall, for today and per treatment type.

    "Today" is the calendar day in `tz`, the business timezone.
    """
    today = today or datetime.now(tz).date()
    total_revenue = 0
    count = 0
    today_revenue = 0
    today_count = 0
    per_type: Dict[str, Dict[str, int]] = {}

    for r in rows:
        cost = int(r["cost_amount"] or 0)
        total_revenue += cost
        count += 1

        created = parse_iso(str(r["created_at"]))
        if created is not None and created.astimezone(tz).date() == today:
            today_revenue += cost
            today_count += 1

        bucket = per_type.setdefault(str(r["treatment_type"]), {"count": 0, "revenue": 0})
        bucket["count"] += 1
        bucket["revenue"] += cost

    by_treatment: List[Dict[str, Any]] = []
    for value, label in TREATMENT_TYPES.items():
        b = per_type.get(value)
        if not b:
            continue
        by_treatment.append({"tindakan": value, "label": label, "count": b["count"], "revenue": b["revenue"]})

    most_popular = None
    if by_treatment:
        # Ties go to the earlier treatment in display order.
        top = max(by_treatment, key=lambda x: x["count"])
        most_popular = {"tindakan": top["tindakan"], "label": top["label"], "count": top["count"]}

    return {
        "totalRevenue": total_revenue,
        "transactionCount": count,
        "todayRevenue": today_revenue,
        "todayCount": today_count,
        "byTreatment": by_treatment,
        "mostPopular": most_popular,
    }


def revenue_summary(conn: Any, *, tz: tzinfo = timezone.utc, **filters: Any) -> Dict[str, Any]:
    return summarize(fetch_matching(conn, **filters), tz=tz)


def _display_date(raw: str, tz: tzinfo) -> str:
    dt = parse_iso(raw)
    return dt.astimezone(tz).strftime("%d/%m/%Y") if dt is not None else ""


def render_csv(rows: Iterable[Any], *, tz: tzinfo = timezone.utc) -> str:
    buf = io.StringIO()
    w = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    w.writerow(CSV_HEADERS)
    for i, r in enumerate(rows, start=1):
        w.writerow(
            [
                i,
                r["baby_name"],
                r["age"],
                SEX_TO_EXTERNAL.get(str(r["sex"]), r["sex"]),
                r["weight_kg"],
                r["length_cm"],
                r["guardian_name"],
                r["address"],
                TREATMENT_TYPES.get(str(r["treatment_type"]), r["treatment_type"]),
                int(r["cost_amount"] or 0),
                r["note"] or "",
                _display_date(str(r["created_at"]), tz),
            ]
        )
    return buf.getvalue()


def export_filename(
    *,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    treatment_type: Optional[str] = None,
    today: Optional[date] = None,
) -> str:
    # Stamped with the UTC date, unlike the Tanggal column.
    stamp = (today or datetime.now(timezone.utc).date()).isoformat()
    t = (treatment_type or "").strip()
    if t == "all":
        t = ""

    if not (start_date or end_date or t):
        return f"baby-spa-transactions-{stamp}.csv"

    parts: List[str] = []
    if start_date:
        parts.append(f"dari-{start_date}")
    if end_date:
        parts.append(f"sampai-{end_date}")
    if t:
        label = TREATMENT_TYPES.get(t, t)
        parts.append("tindakan-" + "-".join(label.split()).lower())
    return "baby-spa-analisis-" + "-".join(parts) + f"-{stamp}.csv"
