"""Tests for the reconciliation CLI."""

import json
from collections.abc import Callable
from pathlib import Path
from unittest.mock import ANY, MagicMock, patch

import pytest

from carrier_recon.cli import (
    _find_documents,
    _print_summary,
    main,
    process_folder,
    reconcile_single,
)
from carrier_recon.ocr.document_loader import DocumentLoader
from carrier_recon.oracle.ports import OracleTask
from carrier_recon.pipeline.batch import BatchReport, DocumentOutcome
from carrier_recon.pipeline.processor import DocumentReconciler
from carrier_recon.utils.config import AppConfig, OCRConfig

from conftest import DHL_INVOICE_TEXT, FakeOracle

SURVEY_ONE = {"estimated_pages": 1, "estimated_shipments": 1}


@pytest.fixture
def components(
    make_reconciler: Callable[..., DocumentReconciler],
) -> tuple[DocumentLoader, DocumentReconciler]:
    """Loader without OCR and a reconciler that only answers the survey."""
    return (
        DocumentLoader(OCRConfig(enabled=False)),
        make_reconciler(FakeOracle({OracleTask.SURVEY: SURVEY_ONE})),
    )


class TestFindDocuments:
    """Tests for document discovery."""

    def test_finds_supported_files(self, tmp_path: Path) -> None:
        for name in ("b.pdf", "a.txt", "c.PNG", "notes.docx"):
            (tmp_path / name).touch()

        found = _find_documents(tmp_path)

        assert [p.name for p in found] == ["a.txt", "b.pdf", "c.PNG"]

    def test_empty_directory(self, tmp_path: Path) -> None:
        assert _find_documents(tmp_path) == []


class TestReconcileSingle:
    """Tests for single document reconciliation."""

    @patch("carrier_recon.cli._build_components")
    def test_returns_report_dict(
        self, mock_build: MagicMock, components: tuple, tmp_path: Path
    ) -> None:
        mock_build.return_value = components
        doc = tmp_path / "dhl.txt"
        doc.write_text(DHL_INVOICE_TEXT)

        result = reconcile_single(doc, "alice", AppConfig())

        assert result["filename"] == "dhl.txt"
        assert result["carrier"]["carrier_id"] == "dhl"
        assert result["fallback"] is True
        assert result["results"][0]["best_match_id"] == "R1"

    @patch("carrier_recon.cli._build_components")
    def test_carrier_override(
        self, mock_build: MagicMock, components: tuple, tmp_path: Path
    ) -> None:
        mock_build.return_value = components
        doc = tmp_path / "dhl.txt"
        doc.write_text(DHL_INVOICE_TEXT)

        result = reconcile_single(doc, "alice", AppConfig(), carrier_override="Purolator")

        assert result["carrier"]["carrier_id"] == "purolator"
        assert result["carrier"]["source"] == "override"


class TestProcessFolder:
    """Tests for batch folder processing."""

    @patch("carrier_recon.cli._build_components")
    def test_process_folder(
        self, mock_build: MagicMock, components: tuple, tmp_path: Path
    ) -> None:
        mock_build.return_value = components
        (tmp_path / "dhl.txt").write_text(DHL_INVOICE_TEXT)
        (tmp_path / "blank.txt").write_text("   ")

        report = process_folder(tmp_path, "alice", AppConfig(), batch_size=1)

        assert [o.filename for o in report.outcomes] == ["blank.txt", "dhl.txt"]
        assert report.succeeded == 1
        assert report.outcomes[0].failed_step == "extraction"

    @patch("carrier_recon.cli._build_components")
    def test_empty_folder(self, mock_build: MagicMock, tmp_path: Path) -> None:
        report = process_folder(tmp_path, "alice", AppConfig())

        assert report.outcomes == []
        mock_build.assert_not_called()


class TestPrintSummary:
    """Tests for the batch summary output."""

    def test_summary(self, capsys: pytest.CaptureFixture[str], tmp_path: Path) -> None:
        report = BatchReport(
            outcomes=[DocumentOutcome(filename="x.pdf", error="boom", failed_step="load")]
        )

        _print_summary(report, tmp_path / "out.json")

        out = capsys.readouterr().out
        assert "Batch Reconciliation Complete" in out
        assert "Failed:          1" in out
        assert "out.json" in out


class TestCLIMain:
    """Tests for the CLI argument parser and main entry point."""

    def setup_method(self) -> None:
        self.config_args = ["-c", "/nonexistent/config.yaml"]

    def test_no_command_shows_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(self.config_args)
        assert exc_info.value.code == 0
        assert "reconcile" in capsys.readouterr().out

    def test_principal_is_required(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([*self.config_args, "batch", str(tmp_path)])
        assert exc_info.value.code == 2

    def test_batch_nonexistent_directory(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([*self.config_args, "batch", "/nonexistent/path", "--principal", "alice"])
        assert exc_info.value.code == 1
        assert "not a directory" in capsys.readouterr().err

    def test_reconcile_nonexistent_file(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main([*self.config_args, "reconcile", "/nonexistent/file.pdf", "--principal", "a"])
        assert exc_info.value.code == 1
        assert "does not exist" in capsys.readouterr().err

    @patch("carrier_recon.cli.process_folder")
    def test_batch_command(
        self,
        mock_pf: MagicMock,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_pf.return_value = BatchReport()

        main([*self.config_args, "batch", str(tmp_path), "--principal", "alice", "-b", "4"])

        mock_pf.assert_called_once_with(tmp_path, "alice", ANY, 4)
        assert isinstance(mock_pf.call_args.args[2], AppConfig)
        assert "Documents:       0" in capsys.readouterr().out

    @patch("carrier_recon.cli.process_folder")
    def test_batch_to_output_file(self, mock_pf: MagicMock, tmp_path: Path) -> None:
        mock_pf.return_value = BatchReport()
        output = tmp_path / "out" / "batch.json"

        main([*self.config_args, "batch", str(tmp_path), "--principal", "alice", "-o", str(output)])

        data = json.loads(output.read_text())
        assert data["documents"] == 0

    @patch("carrier_recon.cli.reconcile_single")
    def test_reconcile_command(
        self,
        mock_single: MagicMock,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        mock_single.return_value = {"filename": "inv.pdf", "results": []}
        doc = tmp_path / "inv.pdf"
        doc.touch()

        main([*self.config_args, "reconcile", str(doc), "--principal", "alice", "--carrier", "ups"])

        mock_single.assert_called_once_with(doc, "alice", ANY, "ups")
        assert "inv.pdf" in capsys.readouterr().out

    @patch("carrier_recon.cli.reconcile_single")
    def test_reconcile_to_output_file(self, mock_single: MagicMock, tmp_path: Path) -> None:
        mock_single.return_value = {"filename": "inv.pdf", "results": []}
        doc = tmp_path / "inv.pdf"
        doc.touch()
        output = tmp_path / "result.json"

        main([*self.config_args, "reconcile", str(doc), "--principal", "alice", "-o", str(output)])

        assert json.loads(output.read_text())["filename"] == "inv.pdf"
