from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sahasrara_spa.models import SEX_TO_EXTERNAL, SEX_TO_INTERNAL, TREATMENT_TYPES
from sahasrara_spa.util.time import parse_iso, to_iso, utcnow_iso


DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 500

# Request key -> column. Order is the order fields are validated in.
REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("nama", "baby_name"),
    ("umur", "age"),
    ("jenisKelamin", "sex"),
    ("beratBadan", "weight_kg"),
    ("panjangBadan", "length_cm"),
    ("namaOrtu", "guardian_name"),
    ("alamat", "address"),
    ("tindakan", "treatment_type"),
    ("biaya", "cost_amount"),
)

# Column -> response key.
RESPONSE_KEYS: Dict[str, str] = {
    "id": "id",
    "baby_name": "namaBayi",
    "age": "umur",
    "sex": "jenisKelamin",
    "weight_kg": "beratBadan",
    "length_cm": "panjangBadan",
    "guardian_name": "namaOrtu",
    "address": "alamat",
    "treatment_type": "tindakan",
    "cost_amount": "biaya",
    "note": "keterangan",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

SEARCH_COLUMNS = ("baby_name", "guardian_name", "address")


class TransactionValidationError(ValueError):
    """Carries a user-facing message."""


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def parse_cost(raw: Any) -> int:
    """Parse a cost in rupiah. Fractions are truncated toward zero ("12.5" -> 12)."""
    if isinstance(raw, bool):
        raise TransactionValidationError("Biaya harus berupa angka yang valid")
    if isinstance(raw, int):
        value = raw
    else:
        try:
            d = Decimal(str(raw).strip())
        except (InvalidOperation, ValueError):
            raise TransactionValidationError("Biaya harus berupa angka yang valid")
        if not d.is_finite():
            raise TransactionValidationError("Biaya harus berupa angka yang valid")
        value = int(d)
    if value < 0:
        raise TransactionValidationError("Biaya tidak boleh negatif")
    return value


def parse_sex(raw: Any) -> str:
    code = str(raw or "").strip().upper()
    if code not in SEX_TO_INTERNAL:
        raise TransactionValidationError("Jenis kelamin harus L atau P")
    return SEX_TO_INTERNAL[code]


def parse_treatment(raw: Any) -> str:
    value = str(raw or "").strip()
    if value not in TREATMENT_TYPES:
        raise TransactionValidationError("Tindakan tidak valid")
    return value


def parse_payload(body: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a create/update body and return column values.

    `created_at` is only present when the client supplied `tanggal` (backdating).
    """
    if any(_blank(body.get(key)) for key, _ in REQUIRED_FIELDS):
        raise TransactionValidationError("Semua field wajib harus diisi")

    fields: Dict[str, Any] = {}
    for key, col in REQUIRED_FIELDS:
        fields[col] = str(body.get(key)).strip()

    fields["sex"] = parse_sex(body.get("jenisKelamin"))
    fields["treatment_type"] = parse_treatment(body.get("tindakan"))
    fields["cost_amount"] = parse_cost(body.get("biaya"))

    note = body.get("keterangan")
    fields["note"] = None if _blank(note) else str(note).strip()

    tanggal = body.get("tanggal")
    if not _blank(tanggal):
        try:
            dt = parse_iso(str(tanggal))
        except ValueError:
            raise TransactionValidationError("Tanggal tidak valid")
        if dt is not None:
            fields["created_at"] = to_iso(dt)

    return fields


def to_response(row: Any, *, external_sex: bool) -> Dict[str, Any]:
    d = dict(row)
    out = {RESPONSE_KEYS[k]: v for k, v in d.items() if k in RESPONSE_KEYS}
    out["biaya"] = int(d.get("cost_amount") or 0)
    if external_sex:
        out["jenisKelamin"] = SEX_TO_EXTERNAL.get(str(d.get("sex")), d.get("sex"))
    return out


def get_transaction(conn: Any, transaction_id: str) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM transactions WHERE id=?",
        (str(transaction_id),),
    ).fetchone()


def create_transaction(conn: Any, fields: Dict[str, Any]) -> Any:
    now = utcnow_iso()
    transaction_id = uuid.uuid4().hex
    conn.execute(
        """
        INSERT INTO transactions (
            id, baby_name, age, sex, weight_kg, length_cm, guardian_name, address,
            treatment_type, cost_amount, note, created_at, updated_at
        )
        VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?)
        """,
        (
            transaction_id,
            fields["baby_name"],
            fields["age"],
            fields["sex"],
            fields["weight_kg"],
            fields["length_cm"],
            fields["guardian_name"],
            fields["address"],
            fields["treatment_type"],
            int(fields["cost_amount"]),
            fields.get("note"),
            fields.get("created_at") or now,
            now,
        ),
    )
    row = get_transaction(conn, transaction_id)
    assert row is not None
    return row


def update_transaction(conn: Any, transaction_id: str, fields: Dict[str, Any]) -> Optional[Any]:
    """Overwrite a transaction (last write wins). Returns None if it does not exist."""
    if get_transaction(conn, transaction_id) is None:
        return None

    cols = [
        "baby_name",
        "age",
        "sex",
        "weight_kg",
        "length_cm",
        "guardian_name",
        "address",
        "treatment_type",
        "cost_amount",
        "note",
    ]
    values: List[Any] = [fields.get(c) for c in cols]
    if fields.get("created_at"):
        cols.append("created_at")
        values.append(fields["created_at"])
    cols.append("updated_at")
    values.append(utcnow_iso())

    sets = ", ".join([f"{c}=?" for c in cols])
    conn.execute(
        f"UPDATE transactions SET {sets} WHERE id=?",
        values + [str(transaction_id)],
    )
    return get_transaction(conn, transaction_id)


def delete_transaction(conn: Any, transaction_id: str) -> bool:
    cur = conn.execute("DELETE FROM transactions WHERE id=?", (str(transaction_id),))
    return int(cur.rowcount or 0) > 0


def date_bounds(start_date: Optional[str], end_date: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Turn user date filters into (inclusive lower, exclusive upper) ISO bounds.

    A bare YYYY-MM-DD end date covers that whole day.
    """
    lower = upper = None
    start = parse_iso(start_date)
    if start is not None:
        lower = to_iso(start)
    end = parse_iso(end_date)
    if end is not None:
        if len((end_date or "").strip()) == 10:
            end = end + timedelta(days=1)
        else:
            end = end + timedelta(seconds=1)
        upper = to_iso(end)
    return lower, upper


def build_filters(
    *,
    search: Optional[str] = None,
    treatment_type: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Tuple[str, List[Any]]:
    """Return a WHERE clause (possibly empty) and its params."""
    where: List[str] = []
    params: List[Any] = []

    q = (search or "").strip()
    if q:
        like = "%" + q.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
        where.append(
            "(" + " OR ".join([f"LOWER({c}) LIKE ? ESCAPE '\\'" for c in SEARCH_COLUMNS]) + ")"
        )
        params.extend([like] * len(SEARCH_COLUMNS))

    t = (treatment_type or "").strip()
    if t and t != "all":
        where.append("treatment_type=?")
        params.append(t)

    lower, upper = date_bounds(start_date, end_date)
    if lower is not None:
        where.append("created_at >= ?")
        params.append(lower)
    if upper is not None:
        where.append("created_at < ?")
        params.append(upper)

    clause = (" WHERE " + " AND ".join(where)) if where else ""
    return clause, params


def list_transactions(
    conn: Any,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    search: Optional[str] = None,
    treatment_type: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Tuple[List[Any], int]:
    """Newest first. Returns (rows for the page, total matching rows)."""
    page = max(1, int(page))
    limit = max(1, min(MAX_PAGE_LIMIT, int(limit)))
    clause, params = build_filters(
        search=search,
        treatment_type=treatment_type,
        start_date=start_date,
        end_date=end_date,
    )

    total = conn.execute(f"SELECT COUNT(*) AS n FROM transactions{clause}", tuple(params)).fetchone()["n"]
    rows = conn.execute(
        f"SELECT * FROM transactions{clause} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
        tuple(params + [limit, (page - 1) * limit]),
    ).fetchall()
    return list(rows), int(total)


def fetch_matching(conn: Any, **filters: Any) -> List[Any]:
    """All rows matching the filters, newest first (used by reports and CSV export)."""
    clause, params = build_filters(**filters)
    return conn.execute(
        f"SELECT * FROM transactions{clause} ORDER BY created_at DESC, id DESC",
        tuple(params),
    ).fetchall()
