"""
Tests for the claim route resolver.

Verifies that resolve_route():
- Applies the precedence rules in order (withdrawal, postal, VAT, low value, courier)
- Signals incomplete and unroutable answers
- Switches courier claims between C285 and CDS at the cutover date
And covers the route catalog, courier playbooks, deadlines and alternative routes.
"""

from datetime import date, timedelta

import pytest

from dutyback.routing import (
    COURIER_PLAYBOOKS,
    ROUTE_CATALOG,
    Channel,
    ClaimRoute,
    ClaimType,
    Courier,
    EvidenceType,
    Identifier,
    RouteResult,
    check_deadline,
    get_alternative_routes,
    get_courier_playbook,
    get_next_steps,
    get_routing_explanation,
    resolve_route,
)
from dutyback.utils.errors import IncompleteAnswers, SignalKind, UnroutableAnswers
from dutyback.wizard import AnswerModel


CUTOVER = date(2024, 1, 1)


# ============================================================================
# Helper Functions
# ============================================================================


def make_answers(**answers) -> AnswerModel:
    """Build an AnswerModel the way the wizard does, through update_answers()."""
    model = AnswerModel()
    model.update_answers(answers)
    return model


# ============================================================================
# Test: Precedence Rules
# ============================================================================


class TestPrecedence:
    """Rules are applied in order and the first match wins."""

    @pytest.mark.parametrize("channel", [None, "courier", "postal"])
    @pytest.mark.parametrize("vat_registered", [None, True, False])
    def test_withdrawal_always_seller_refund(self, channel, vat_registered):
        answers = make_answers(claim_type="withdrawal", channel=channel, vat_registered=vat_registered)

        result = resolve_route(answers)

        assert result.route == ClaimRoute.SELLER_REFUND

    @pytest.mark.parametrize("claim_type", ["overpayment", "rejected_import", "low_value"])
    @pytest.mark.parametrize("vat_registered", [None, True, False])
    def test_postal_always_bor286_unless_withdrawal(self, claim_type, vat_registered):
        answers = make_answers(channel="postal", claim_type=claim_type, vat_registered=vat_registered)

        result = resolve_route(answers)

        assert result.route == ClaimRoute.BOR286

    def test_vat_registered_courier_goes_to_vat_return(self):
        for claim_type in ("overpayment", "rejected_import", "low_value"):
            answers = make_answers(channel="courier", vat_registered=True, claim_type=claim_type)
            assert resolve_route(answers).route == ClaimRoute.VAT_RETURN

    def test_low_value_courier_goes_to_ce1179(self):
        answers = make_answers(channel="courier", vat_registered=False, claim_type="low_value")

        result = resolve_route(answers)

        assert result.route == ClaimRoute.CE1179
        assert result.required_evidence == frozenset({EvidenceType.INVOICE, EvidenceType.ENTITLEMENT_PROOF})
        assert result.required_identifiers == frozenset({Identifier.MRN, Identifier.EORI})

    @pytest.mark.parametrize("claim_type", ["overpayment", "rejected_import"])
    def test_other_courier_claims_go_to_c285(self, claim_type):
        answers = make_answers(channel="courier", vat_registered=False, claim_type=claim_type)

        assert resolve_route(answers).route == ClaimRoute.C285

    def test_resolver_is_idempotent(self):
        answers = make_answers(channel="courier", vat_registered=False, claim_type="overpayment")

        first = resolve_route(answers)
        second = resolve_route(answers)

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_resolver_does_not_mutate_answers(self):
        answers = make_answers(channel="postal", vat_registered=True, claim_type="overpayment")
        before = answers.model_dump()

        resolve_route(answers)

        assert answers.model_dump() == before


# ============================================================================
# Test: Documented Scenarios
# ============================================================================


class TestScenarios:
    """End-to-end routing scenarios."""

    def test_postal_overpayment_not_vat_registered(self):
        answers = make_answers(channel="postal", vat_registered=False, claim_type="overpayment")

        result = resolve_route(answers)

        assert result.route == ClaimRoute.BOR286
        assert result.required_evidence == frozenset({
            EvidenceType.INVOICE,
            EvidenceType.PROOF_OF_POSTAL_CHARGE,
        })
        assert result.required_identifiers == frozenset({Identifier.CHARGE_REFERENCE})

    def test_courier_overpayment_vat_registered(self):
        answers = make_answers(channel="courier", vat_registered=True, claim_type="overpayment")

        result = resolve_route(answers)

        assert result.route == ClaimRoute.VAT_RETURN
        assert result.required_identifiers == frozenset()

    def test_courier_low_value_not_vat_registered(self):
        answers = make_answers(channel="courier", vat_registered=False, claim_type="low_value")

        assert resolve_route(answers).route == ClaimRoute.CE1179

    def test_withdrawal_overrides_postal_and_vat(self):
        answers = make_answers(claim_type="withdrawal", channel="postal", vat_registered=True)

        result = resolve_route(answers)

        assert result.route == ClaimRoute.SELLER_REFUND
        assert EvidenceType.SELLER_CONTACT in result.required_evidence


# ============================================================================
# Test: Signals
# ============================================================================


class TestSignals:
    """Answers the resolver cannot route."""

    def test_empty_answers_are_incomplete(self):
        with pytest.raises(IncompleteAnswers) as exc_info:
            resolve_route(AnswerModel())

        assert exc_info.value.fields == ["claim_type", "channel", "vat_registered"]
        assert exc_info.value.kind == SignalKind.INCOMPLETE_ANSWERS

    def test_courier_without_vat_status_is_incomplete(self):
        answers = make_answers(channel="courier", claim_type="overpayment")

        with pytest.raises(IncompleteAnswers) as exc_info:
            resolve_route(answers)

        assert exc_info.value.fields == ["vat_registered"]

    def test_postal_does_not_need_vat_status(self):
        answers = make_answers(channel="postal", claim_type="rejected_import")

        assert resolve_route(answers).route == ClaimRoute.BOR286

    def test_missing_claim_type_is_incomplete_even_when_postal(self):
        answers = make_answers(channel="postal", vat_registered=False)

        with pytest.raises(IncompleteAnswers) as exc_info:
            resolve_route(answers)

        assert exc_info.value.fields == ["claim_type"]

    def test_unknown_channel_is_unroutable(self):
        answers = AnswerModel.model_construct(
            channel="pigeon",
            vat_registered=False,
            claim_type=ClaimType.OVERPAYMENT,
        )

        with pytest.raises(UnroutableAnswers) as exc_info:
            resolve_route(answers)

        signal = exc_info.value.to_signal(step=6)
        assert signal.kind == SignalKind.UNROUTABLE_ANSWERS
        assert signal.step == 6
        assert signal.fallback_action == "Contact support"


# ============================================================================
# Test: CDS Cutover
# ============================================================================


class TestCdsCutover:
    """Courier claims on or after the cutover go to CDS."""

    def test_import_after_cutover_goes_to_cds(self):
        answers = make_answers(
            channel="courier", vat_registered=False, claim_type="overpayment",
            import_date="2024-06-01",
        )

        result = resolve_route(answers, cds_cutover_date=CUTOVER)

        assert result.route == ClaimRoute.CDS
        assert result.required_evidence == frozenset({EvidenceType.INVOICE, EvidenceType.TRANSPORT_DOC})

    def test_import_on_cutover_goes_to_cds(self):
        answers = make_answers(
            channel="courier", vat_registered=False, claim_type="overpayment",
            import_date=CUTOVER,
        )

        assert resolve_route(answers, cds_cutover_date=CUTOVER).route == ClaimRoute.CDS

    def test_import_before_cutover_goes_to_c285(self):
        answers = make_answers(
            channel="courier", vat_registered=False, claim_type="overpayment",
            import_date="2023-12-31",
        )

        assert resolve_route(answers, cds_cutover_date=CUTOVER).route == ClaimRoute.C285

    def test_unknown_import_date_goes_to_c285(self):
        answers = make_answers(channel="courier", vat_registered=False, claim_type="overpayment")

        assert resolve_route(answers, cds_cutover_date=CUTOVER).route == ClaimRoute.C285

    def test_no_cutover_never_routes_to_cds(self):
        answers = make_answers(
            channel="courier", vat_registered=False, claim_type="overpayment",
            import_date="2030-01-01",
        )

        assert resolve_route(answers).route == ClaimRoute.C285

    def test_cutover_does_not_affect_low_value(self):
        answers = make_answers(
            channel="courier", vat_registered=False, claim_type="low_value",
            import_date="2024-06-01",
        )

        assert resolve_route(answers, cds_cutover_date=CUTOVER).route == ClaimRoute.CE1179


# ============================================================================
# Test: Route Catalog and Helpers
# ============================================================================


class TestRouteCatalog:
    """Static route information."""

    def test_every_route_has_catalog_entry(self):
        assert set(ROUTE_CATALOG) == set(ClaimRoute)

    def test_next_steps_are_listed(self):
        steps = get_next_steps(ClaimRoute.BOR286)

        assert len(steps) == 4
        assert "Complete HMRC form BOR286" in steps

    def test_routing_explanation_names_route(self):
        explanation = get_routing_explanation(ClaimRoute.VAT_RETURN)

        assert explanation.startswith("VAT Return Adjustment")

    def test_route_result_to_dict_is_sorted(self):
        result = RouteResult(
            route=ClaimRoute.BOR286,
            required_evidence=frozenset({EvidenceType.PROOF_OF_POSTAL_CHARGE, EvidenceType.INVOICE}),
            required_identifiers=frozenset({Identifier.CHARGE_REFERENCE}),
        )

        data = result.to_dict()

        assert data["route"] == "BOR286"
        assert data["required_evidence"] == ["invoice", "proof_of_postal_charge"]
        assert data["required_identifiers"] == ["charge_reference"]

    def test_route_result_is_immutable(self):
        result = RouteResult(route=ClaimRoute.C285)

        with pytest.raises(Exception):
            result.route = ClaimRoute.CDS


class TestCourierPlaybooks:
    """Getting the MRN and EORI out of the courier."""

    def test_courier_playbooks(self):
        assert set(COURIER_PLAYBOOKS) == {Courier.DHL, Courier.FEDEX, Courier.UPS}
        assert get_courier_playbook(Courier.DHL).phone == "0344 248 0844"
        assert get_courier_playbook("FedEx").response_time == "1-2 business days"

    def test_no_playbook_for_royal_mail(self):
        assert get_courier_playbook(Courier.ROYAL_MAIL) is None
        assert get_courier_playbook(None) is None

    def test_request_email_fills_given_details(self):
        playbook = get_courier_playbook(Courier.UPS)

        email = playbook.request_email({"tracking_number": "1Z999AA10123456784", "value": 120})

        assert "Dear UPS Customer Service" in email
        assert "- Tracking Number: 1Z999AA10123456784" in email
        assert "- Value: £120" in email
        assert "- Import Date: [IMPORT_DATE]" in email
        assert "[YOUR_NAME]" in email

    def test_to_dict(self):
        data = get_courier_playbook(Courier.DHL).to_dict()

        assert data["courier"] == "DHL"
        assert data["contact"] == "customercare@dhl.com"
        assert len(data["instructions"]) == 5
        assert data["request_email"].startswith("Subject: Request for MRN and EORI")


class TestAlternativeRoutes:
    """Fallback routes shown on the review screen."""

    def test_withdrawal_falls_back_to_channel_route(self):
        answers = make_answers(claim_type="withdrawal", channel="postal")

        alternatives = get_alternative_routes(answers)

        assert [info.route for info in alternatives] == [ClaimRoute.BOR286]

    def test_withdrawal_without_channel_has_no_fallback(self):
        answers = make_answers(claim_type="withdrawal")

        assert get_alternative_routes(answers) == []

    def test_low_value_can_try_seller_first(self):
        answers = make_answers(channel="courier", vat_registered=False, claim_type="low_value")

        alternatives = get_alternative_routes(answers)

        assert [info.route for info in alternatives] == [ClaimRoute.SELLER_REFUND]

    def test_c285_offers_cds_only_with_cutover(self):
        answers = make_answers(channel="courier", vat_registered=False, claim_type="overpayment")

        assert get_alternative_routes(answers) == []
        assert [info.route for info in get_alternative_routes(answers, CUTOVER)] == [ClaimRoute.CDS]

    def test_cds_offers_c285(self):
        answers = make_answers(
            channel="courier", vat_registered=False, claim_type="overpayment",
            import_date="2024-06-01",
        )

        alternatives = get_alternative_routes(answers, CUTOVER)

        assert [info.route for info in alternatives] == [ClaimRoute.C285]

    def test_incomplete_answers_have_no_alternatives(self):
        assert get_alternative_routes(AnswerModel()) == []

    def test_alternatives_do_not_change_answers(self):
        answers = make_answers(claim_type="withdrawal", channel="courier", vat_registered=False)

        get_alternative_routes(answers)

        assert answers.claim_type == ClaimType.WITHDRAWAL
        assert answers.channel == Channel.COURIER


# ============================================================================
# Test: Deadlines
# ============================================================================


class TestDeadlines:
    """Filing deadlines counted from the import date."""

    def test_route_without_deadline_is_eligible(self):
        status = check_deadline(ClaimRoute.BOR286, date(2000, 1, 1), today=date(2024, 1, 1))

        assert status.is_eligible
        assert status.days_remaining is None
        assert status.deadline is None

    def test_unknown_import_date_is_eligible(self):
        status = check_deadline(ClaimRoute.C285, None)

        assert status.is_eligible
        assert status.deadline is None

    def test_days_remaining_within_deadline(self):
        import_date = date(2024, 1, 1)
        today = date(2024, 6, 1)

        status = check_deadline(ClaimRoute.C285, import_date, today=today)

        assert status.is_eligible
        assert status.deadline == import_date + timedelta(days=365)
        assert status.days_remaining == (status.deadline - today).days
        assert f"{status.days_remaining} days remaining" in status.message

    def test_deadline_passed(self):
        status = check_deadline(ClaimRoute.CE1179, date(2024, 1, 1), today=date(2024, 6, 1))

        assert not status.is_eligible
        assert status.days_remaining < 0
        assert "has passed" in status.message

    def test_deadline_day_itself_is_not_eligible(self):
        import_date = date(2024, 1, 1)
        deadline = import_date + timedelta(days=90)

        status = check_deadline(ClaimRoute.CE1179, import_date, today=deadline)

        assert status.days_remaining == 0
        assert not status.is_eligible

    def test_to_dict(self):
        data = check_deadline(ClaimRoute.C285, date(2024, 1, 1), today=date(2024, 1, 2)).to_dict()

        assert data["deadline"] == "2024-12-31"
        assert data["days_remaining"] == 364
        assert data["is_eligible"] is True
