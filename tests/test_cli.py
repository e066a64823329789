from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from ledger_doctor import __version__
from tests.helpers import CLEAN_CSV


ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "ledger_doctor.cli"]
FIXED_STAMP = "20260301T010203Z"


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env["LEDGER_DOCTOR_OUTPUT_STAMP"] = FIXED_STAMP
    merged_env.pop("LEDGER_DOCTOR_STORE_DIR", None)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def write_csv(tmpdir: str, name: str, content: str) -> Path:
    path = Path(tmpdir) / name
    path.write_text(content, encoding="utf-8")
    return path


class LedgerDoctorCliTests(unittest.TestCase):
    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout.strip(), __version__)

    def test_ingest_clean_csv_returns_exit_0_and_writes_outputs(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "tb.csv", CLEAN_CSV)
            out_dir = Path(tmpdir) / "out"
            proc = run_cli("ingest", str(input_path), "--out", str(out_dir))

            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Audit written:", proc.stderr)
            audit = json.loads((out_dir / "audit.json").read_text())
            data = json.loads((out_dir / "financial-data.json").read_text())

        self.assertEqual(audit["contract"]["name"], "ledger_doctor.audit")
        self.assertEqual(audit["totalRows"], 3)
        self.assertEqual(audit["validRows"], 3)
        self.assertEqual(data[0], {"Particulars": "Cash in Hand", "Debit": 1500.0, "Credit": ""})

    def test_ingest_with_row_issues_returns_exit_3(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "tb.csv", "Particulars,Debit,Credit\nCash,100,\n,5,\n")
            proc = run_cli("ingest", str(input_path), "--out", str(Path(tmpdir) / "out"))

        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertIn("Missing Particulars value", proc.stderr)

    def test_ingest_unusable_file_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "tb.csv", "Name,Value\nCash,5\n")
            out_dir = Path(tmpdir) / "out"
            proc = run_cli("ingest", str(input_path), "--out", str(out_dir))

            self.assertEqual(proc.returncode, 2)
            self.assertIn("Missing required columns", proc.stderr)
            self.assertTrue((out_dir / "audit.json").exists())
            self.assertFalse((out_dir / "financial-data.json").exists())

    def test_ingest_json_stdout_contains_only_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "tb.csv", CLEAN_CSV)
            proc = run_cli("ingest", str(input_path), "--json", "--out", str(Path(tmpdir) / "out"))

        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["summary"]["command"], "ingest")
        self.assertEqual(payload["summary"]["metrics"]["canonical_rows"], 3)
        self.assertEqual(len(payload["financialData"]), 3)
        self.assertEqual(proc.stderr.strip(), "")

    def test_ingest_store_writes_store_keys(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "tb.csv", CLEAN_CSV)
            store_dir = Path(tmpdir) / "store"
            proc = run_cli("ingest", str(input_path), "-q", "--out", str(Path(tmpdir) / "out"), "--store", str(store_dir))

            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertEqual(
                sorted(path.name for path in store_dir.iterdir()),
                ["balanceSheetReport.json", "financialData.json", "profitLossReport.json", "ratiosData.json"],
            )
        self.assertEqual(proc.stderr.strip(), "")

    def test_default_output_directory_uses_stamp(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "ledger.csv", CLEAN_CSV)
            proc = subprocess.run(
                [*CLI, "ingest", str(input_path), "-q"],
                cwd=tmpdir,
                capture_output=True,
                text=True,
                env={**os.environ, "LEDGER_DOCTOR_OUTPUT_STAMP": FIXED_STAMP, "PYTHONPATH": str(ROOT)},
            )
            expected = Path(tmpdir) / "ledger-doctor-output" / f"ledger-{FIXED_STAMP}" / "audit.json"
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertTrue(expected.exists())

    def test_report_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "tb.csv", CLEAN_CSV)
            out_dir = Path(tmpdir) / "out"
            proc = run_cli("report", str(input_path), "--json", "--out", str(out_dir))

            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertTrue((out_dir / "reports.json").exists())
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["profitLoss"]["totalIncome"], 4000.0)
        self.assertEqual(payload["profitLoss"]["netProfit"], 1500.0)
        self.assertIn("currentRatio", payload["ratios"])

    def test_report_text(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = write_csv(tmpdir, "tb.csv", CLEAN_CSV)
            proc = run_cli("report", str(input_path), "--out", str(Path(tmpdir) / "out"))

        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Balance Sheet", proc.stderr)
        self.assertIn("Report written:", proc.stderr)

    def test_sample_then_clean_to_csv(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            sample_path = Path(tmpdir) / "sample.xlsx"
            proc = run_cli("sample", "--output", str(sample_path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertTrue(sample_path.exists())

            clean_path = Path(tmpdir) / "clean.csv"
            proc = run_cli("clean", str(sample_path), "--format", "csv", "--output", str(clean_path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            lines = clean_path.read_text(encoding="utf-8").splitlines()

        self.assertEqual(lines[0], "Particulars,Debit,Credit")
        self.assertEqual(lines[1], "Cash in Hand,15000.0,")

    def test_existing_output_is_not_overwritten(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            target = Path(tmpdir) / "sample.xlsx"
            target.write_text("keep me", encoding="utf-8")
            proc = run_cli("sample", "--output", str(target))

            self.assertEqual(proc.returncode, 1)
            self.assertIn("Refusing to overwrite", proc.stderr)
            self.assertEqual(target.read_text(encoding="utf-8"), "keep me")

    def test_missing_input_returns_exit_1(self):
        proc = run_cli("ingest", "does/not/exist.csv")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_bad_arguments_return_exit_1(self):
        proc = run_cli("ingest")
        self.assertEqual(proc.returncode, 1)


if __name__ == "__main__":
    unittest.main()
