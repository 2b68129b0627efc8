"""
Tests for the claim routing CLI.
"""

import json

import pytest

from dutyback.storage import ClaimStore
from dutyback.wizard import cli


def run_cli(capsys, *argv) -> dict:
    cli.main(list(argv))
    return json.loads(capsys.readouterr().out)


class TestRouteReport:

    def test_low_value_courier(self, capsys):
        report = run_cli(capsys, "--channel", "courier", "--vat", "no", "--claim-type", "low_value")

        assert report["route_result"]["route"] == "CE1179"
        assert report["route"]["form_number"] == "C&E1179"
        assert report["signal"] is None
        assert report["missing_evidence"] == ["entitlement_proof", "invoice"]
        assert [alt["route"] for alt in report["alternatives"]] == ["SELLER_REFUND"]

    def test_withdrawal_needs_no_other_answers(self, capsys):
        report = run_cli(capsys, "--claim-type", "withdrawal", "--pretty")

        assert report["route_result"]["route"] == "SELLER_REFUND"
        assert report["deadline"]["is_eligible"] is True

    def test_incomplete_answers(self, capsys):
        report = run_cli(capsys, "--channel", "courier")

        assert report["route_result"] is None
        assert report["signal"]["kind"] == "incomplete_answers"
        assert report["signal"]["fields"] == ["claim_type", "vat_registered"]
        assert "2" in report["step_errors"]

    def test_cds_cutover_flag(self, capsys):
        report = run_cli(
            capsys,
            "--channel", "courier", "--vat", "no", "--claim-type", "overpayment",
            "--import-date", "2024-03-01", "--cds-cutover", "2024-01-01",
        )

        assert report["route_result"]["route"] == "CDS"

    def test_courier_claim_gets_playbook(self, capsys):
        report = run_cli(
            capsys,
            "--channel", "courier", "--courier", "DHL", "--vat", "no", "--claim-type", "overpayment",
        )

        assert report["route_result"]["route"] == "C285"
        assert report["courier_playbook"]["name"] == "DHL"
        assert report["courier_playbook"]["phone"] == "0344 248 0844"

    def test_no_playbook_without_mrn_route(self, capsys):
        vat_report = run_cli(
            capsys,
            "--channel", "courier", "--courier", "DHL", "--vat", "yes", "--claim-type", "overpayment",
        )
        postal_report = run_cli(capsys, "--channel", "postal", "--vat", "no", "--claim-type", "overpayment")

        assert vat_report["route_result"]["route"] == "VAT_RETURN"
        assert "courier_playbook" not in vat_report
        assert "courier_playbook" not in postal_report

    def test_output_file(self, tmp_path):
        output = tmp_path / "out" / "report.json"

        cli.main(["--channel", "postal", "--claim-type", "overpayment", "-o", str(output)])

        assert json.loads(output.read_text())["route_result"]["route"] == "BOR286"


class TestSave:

    @pytest.fixture
    def store(self, tmp_path, monkeypatch):
        store = ClaimStore(db_path=tmp_path / "claims.db")
        monkeypatch.setattr(cli, "get_claim_store", lambda: store)
        return store

    def test_complete_claim_is_submitted(self, capsys, store):
        report = run_cli(
            capsys,
            "--channel", "postal", "--vat", "no", "--claim-type", "overpayment",
            "--charge-reference", "RM123456",
            "--evidence", "invoice", "proof_of_postal_charge",
            "--save",
        )

        claim = store.get(report["claim_id"])
        assert report["status"] == "submitted"
        assert claim.status == "submitted"
        assert claim.route == "BOR286"

    def test_incomplete_claim_is_saved_as_draft(self, capsys, store):
        report = run_cli(
            capsys,
            "--channel", "courier", "--vat", "no", "--claim-type", "overpayment",
            "--save",
        )

        claim = store.get(report["claim_id"])
        assert claim.status == "identifiers_pending"
        assert report["current_step"] == 4
        assert store.load_draft(report["claim_id"]).current_step == 4
