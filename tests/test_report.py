"""
Tests for revenue summaries, CSV rendering and export filenames.
"""

import csv
import io
from datetime import date
from zoneinfo import ZoneInfo

from sahasrara_spa.transactions.report import CSV_HEADERS, export_filename, render_csv, summarize


TODAY = date(2025, 1, 15)
JAKARTA = ZoneInfo("Asia/Jakarta")


def _row(**overrides):
    row = {
        "id": "abc",
        "baby_name": "Dewi",
        "age": "3 bulan",
        "sex": "FEMALE",
        "weight_kg": "5.2",
        "length_cm": "58",
        "guardian_name": "Siti",
        "address": "Jl. Mawar 1",
        "treatment_type": "pijat_bayi",
        "cost_amount": 100000,
        "note": None,
        "created_at": "2025-01-10T08:30:00Z",
        "updated_at": "2025-01-10T08:30:00Z",
    }
    row.update(overrides)
    return row


class TestSummarize:
    def test_empty(self):
        s = summarize([], today=TODAY)
        assert s == {
            "totalRevenue": 0,
            "transactionCount": 0,
            "todayRevenue": 0,
            "todayCount": 0,
            "byTreatment": [],
            "mostPopular": None,
        }

    def test_totals_and_today(self):
        rows = [
            _row(cost_amount=100000),
            _row(cost_amount=50000, created_at="2025-01-15T01:00:00Z"),
            _row(cost_amount=25000, created_at="2025-01-15T23:59:59Z", treatment_type="baby_gym"),
        ]
        s = summarize(rows, today=TODAY)
        assert s["totalRevenue"] == 175000
        assert s["transactionCount"] == 3
        assert s["todayRevenue"] == 75000
        assert s["todayCount"] == 2

    def test_by_treatment_follows_catalogue_order(self):
        rows = [
            _row(treatment_type="baby_gym", cost_amount=10),
            _row(treatment_type="pijat_bayi", cost_amount=20),
            _row(treatment_type="baby_gym", cost_amount=30),
        ]
        s = summarize(rows, today=TODAY)
        assert [b["tindakan"] for b in s["byTreatment"]] == ["pijat_bayi", "baby_gym"]
        assert s["byTreatment"][1] == {"tindakan": "baby_gym", "label": "Baby Gym", "count": 2, "revenue": 40}
        assert s["mostPopular"] == {"tindakan": "baby_gym", "label": "Baby Gym", "count": 2}

    def test_today_follows_business_timezone(self):
        # 18:00 UTC on the 14th is 01:00 on the 15th in Jakarta.
        rows = [
            _row(cost_amount=40000, created_at="2025-01-14T18:00:00Z"),
            _row(cost_amount=60000, created_at="2025-01-15T18:00:00Z"),
        ]
        utc = summarize(rows, today=TODAY)
        assert (utc["todayRevenue"], utc["todayCount"]) == (60000, 1)

        wib = summarize(rows, today=TODAY, tz=JAKARTA)
        assert (wib["todayRevenue"], wib["todayCount"]) == (40000, 1)

    def test_tie_goes_to_earlier_treatment(self):
        rows = [_row(treatment_type="yoga_bayi"), _row(treatment_type="baby_swimming")]
        assert summarize(rows, today=TODAY)["mostPopular"]["tindakan"] == "baby_swimming"


class TestRenderCsv:
    def test_header_only_when_empty(self):
        assert list(csv.reader(io.StringIO(render_csv([])))) == [CSV_HEADERS]

    def test_row_formatting(self):
        rows = [
            _row(note="Rewel, tapi tenang"),
            _row(baby_name="Budi", sex="MALE", treatment_type="aqua_therapy", cost_amount=0),
        ]
        parsed = list(csv.reader(io.StringIO(render_csv(rows))))
        assert parsed[1] == [
            "1",
            "Dewi",
            "3 bulan",
            "P",
            "5.2",
            "58",
            "Siti",
            "Jl. Mawar 1",
            "Pijat Bayi",
            "100000",
            "Rewel, tapi tenang",
            "10/01/2025",
        ]
        assert parsed[2][0] == "2"
        assert parsed[2][3] == "L"
        assert parsed[2][8] == "Aqua Therapy"
        assert parsed[2][9] == "0"
        assert parsed[2][10] == ""

    def test_date_column_uses_business_timezone(self):
        rows = [_row(created_at="2025-01-09T20:00:00Z")]
        assert list(csv.reader(io.StringIO(render_csv(rows))))[1][11] == "09/01/2025"
        assert list(csv.reader(io.StringIO(render_csv(rows, tz=JAKARTA))))[1][11] == "10/01/2025"


class TestExportFilename:
    def test_unfiltered(self):
        assert export_filename(today=TODAY) == "baby-spa-transactions-2025-01-15.csv"

    def test_all_treatments_counts_as_unfiltered(self):
        assert export_filename(treatment_type="all", today=TODAY) == "baby-spa-transactions-2025-01-15.csv"

    def test_full_filter_set(self):
        name = export_filename(
            start_date="2025-01-01",
            end_date="2025-01-31",
            treatment_type="stimulasi_sensorik",
            today=TODAY,
        )
        assert name == (
            "baby-spa-analisis-dari-2025-01-01-sampai-2025-01-31-tindakan-stimulasi-sensorik-2025-01-15.csv"
        )

    def test_end_date_only(self):
        name = export_filename(end_date="2025-01-31", today=TODAY)
        assert name == "baby-spa-analisis-sampai-2025-01-31-2025-01-15.csv"
