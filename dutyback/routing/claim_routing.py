"""
Import duty/VAT refund routing.

Maps wizard answers to the regulatory route a claim must be filed under:
- Precedence-ordered routing rules (first match wins)
- Route catalog with forms, deadlines and filing steps
- Deadline and alternative-route helpers for the review screen

The resolver is pure: the same answers and cutover date always give the
same RouteResult.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional, TYPE_CHECKING

from ..utils.errors import IncompleteAnswers, UnroutableAnswers
from .schema import Channel, ClaimRoute, ClaimType, Courier, EvidenceType, Identifier, RouteResult

if TYPE_CHECKING:
    from ..wizard.schema import AnswerModel

logger = logging.getLogger(__name__)


HMRC_CONTACT = {
    "phone": "0300 200 3700",
    "email": "customs.declarations@hmrc.gov.uk",
    "website": "https://www.gov.uk/guidance/claim-a-refund-of-import-vat-and-duty",
}


# =============================================================================
# Route Catalog
# =============================================================================


@dataclass(frozen=True)
class RouteInfo:
    """Static description of a claim route."""
    route: ClaimRoute
    name: str
    description: str
    form_number: Optional[str] = None
    deadline_days: Optional[int] = None  # None = no fixed deadline
    eligibility: tuple[str, ...] = ()
    process: tuple[str, ...] = ()
    contact: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "route": self.route.value,
            "name": self.name,
            "description": self.description,
            "form_number": self.form_number,
            "deadline_days": self.deadline_days,
            "eligibility": list(self.eligibility),
            "process": list(self.process),
            "contact": dict(self.contact),
        }


ROUTE_CATALOG: dict[ClaimRoute, RouteInfo] = {
    ClaimRoute.CDS: RouteInfo(
        route=ClaimRoute.CDS,
        name="Customs Declaration Service",
        description="Online overpayment claim for courier imports declared on CDS",
        deadline_days=3 * 365,
        eligibility=(
            "Goods imported through a courier (DHL, FedEx, UPS, etc.)",
            "Overpaid VAT and/or duty",
            "Have MRN and EORI numbers",
            "Claim within 3 years of import",
        ),
        process=(
            "Obtain MRN and EORI from courier",
            "Gather required evidence documents",
            "Submit claim through the CDS online portal",
            "Wait for HMRC decision (typically 15-30 days)",
        ),
        contact=HMRC_CONTACT,
    ),
    ClaimRoute.C285: RouteInfo(
        route=ClaimRoute.C285,
        name="Form C285 - Repayment of import duty",
        description="Repayment claim for courier imports declared before the CDS cutover",
        form_number="C285",
        deadline_days=365,
        eligibility=(
            "Goods imported through a courier",
            "Have MRN and EORI numbers",
            "Claim within 1 year",
        ),
        process=(
            "Obtain MRN and EORI from courier",
            "Complete HMRC form C285",
            "Submit with supporting evidence",
            "Wait for HMRC decision (typically 15-30 days)",
        ),
        contact=HMRC_CONTACT,
    ),
    ClaimRoute.BOR286: RouteInfo(
        route=ClaimRoute.BOR286,
        name="Form BOR286 - Postal Import",
        description="For goods imported through postal services (Royal Mail, Parcelforce)",
        form_number="BOR286",
        eligibility=(
            "Goods imported through a postal service",
            "Have the charge reference from the postal charge notice",
            "Can provide proof of the postal charge paid",
        ),
        process=(
            "Obtain charge reference from the postal charge notice",
            "Complete HMRC form BOR286",
            "Submit with supporting evidence",
            "Wait for HMRC decision (typically 15-30 days)",
        ),
        contact=HMRC_CONTACT,
    ),
    ClaimRoute.CE1179: RouteInfo(
        route=ClaimRoute.CE1179,
        name="Form C&E1179 - Low value / returned goods",
        description="Repayment claim for low value courier imports",
        form_number="C&E1179",
        deadline_days=90,
        eligibility=(
            "Goods imported through a courier",
            "Low value consignment",
            "Claim within 90 days",
            "Can prove entitlement to the refund",
        ),
        process=(
            "Complete HMRC form C&E1179",
            "Attach entitlement proof",
            "Submit with supporting evidence",
            "Wait for HMRC decision (typically 15-30 days)",
        ),
        contact=HMRC_CONTACT,
    ),
    ClaimRoute.VAT_RETURN: RouteInfo(
        route=ClaimRoute.VAT_RETURN,
        name="VAT Return Adjustment",
        description="VAT registered businesses reclaim import VAT through their VAT return",
        deadline_days=3 * 365,
        eligibility=(
            "VAT registered business",
            "Goods imported for business use",
            "Can provide import documentation",
        ),
        process=(
            "Gather import documentation and invoices",
            "Calculate the correct VAT amount",
            "Adjust the VAT return for the relevant period",
            "Submit the VAT return with supporting evidence",
        ),
        contact=HMRC_CONTACT,
    ),
    ClaimRoute.SELLER_REFUND: RouteInfo(
        route=ClaimRoute.SELLER_REFUND,
        name="Direct Seller Refund",
        description="Withdrawn purchases are refunded by the retailer, not by HMRC",
        eligibility=(
            "Purchase withdrawn or returned to the seller",
            "Can contact the seller directly",
        ),
        process=(
            "Contact the seller to request the refund",
            "Provide proof of the duty and VAT paid",
            "If the seller refuses, ask about an HMRC claim",
            "Keep all correspondence as evidence",
        ),
        contact={"phone": "N/A", "email": "Contact seller directly", "website": "N/A"},
    ),
}


# Evidence and identifiers each route needs before it can be filed
ROUTE_REQUIREMENTS: dict[ClaimRoute, tuple[frozenset, frozenset]] = {
    ClaimRoute.CDS: (
        frozenset({EvidenceType.INVOICE, EvidenceType.TRANSPORT_DOC}),
        frozenset({Identifier.MRN, Identifier.EORI}),
    ),
    ClaimRoute.C285: (
        frozenset({EvidenceType.INVOICE}),
        frozenset({Identifier.MRN, Identifier.EORI}),
    ),
    ClaimRoute.BOR286: (
        frozenset({EvidenceType.INVOICE, EvidenceType.PROOF_OF_POSTAL_CHARGE}),
        frozenset({Identifier.CHARGE_REFERENCE}),
    ),
    ClaimRoute.CE1179: (
        frozenset({EvidenceType.INVOICE, EvidenceType.ENTITLEMENT_PROOF}),
        frozenset({Identifier.MRN, Identifier.EORI}),
    ),
    ClaimRoute.VAT_RETURN: (
        frozenset({EvidenceType.INVOICE, EvidenceType.TRANSPORT_DOC}),
        frozenset(),
    ),
    ClaimRoute.SELLER_REFUND: (
        frozenset({EvidenceType.INVOICE, EvidenceType.SELLER_CONTACT}),
        frozenset(),
    ),
}


# =============================================================================
# Helper Functions
# =============================================================================


def _build_result(route: ClaimRoute, reason: str) -> RouteResult:
    evidence, identifiers = ROUTE_REQUIREMENTS[route]
    return RouteResult(
        route=route,
        required_evidence=evidence,
        required_identifiers=identifiers,
        reason=reason,
    )


def _missing_routing_fields(answers: "AnswerModel") -> list[str]:
    """
    List the answers the precedence rules still need.

    claim_type is always needed (a withdrawal overrides everything else);
    channel is needed unless the claim is a withdrawal; VAT status is needed
    unless the claim is a withdrawal or came by post.
    """
    missing = []

    if answers.claim_type is None:
        missing.append("claim_type")
    elif answers.claim_type == ClaimType.WITHDRAWAL:
        return missing

    if answers.channel is None:
        missing.append("channel")

    if answers.channel != Channel.POSTAL and answers.vat_registered is None:
        missing.append("vat_registered")

    return missing


def _post_dates_cutover(import_date: Optional[date], cds_cutover_date: Optional[date]) -> bool:
    if cds_cutover_date is None or import_date is None:
        return False
    return import_date >= cds_cutover_date


# =============================================================================
# Resolver
# =============================================================================


def resolve_route(answers: "AnswerModel", cds_cutover_date: Optional[date] = None) -> RouteResult:
    """
    Decide which claim route applies to the answers.

    Rules are checked in regulatory precedence order and the first match
    wins. A new route must be inserted at its precedence position, not
    appended.

    Args:
        answers: Current wizard answers
        cds_cutover_date: Imports on or after this date are claimed on CDS
            instead of form C285. None disables CDS routing.

    Returns:
        RouteResult with route, required evidence and identifiers

    Raises:
        IncompleteAnswers: A deciding answer has not been given yet
        UnroutableAnswers: No rule matched
    """
    missing = _missing_routing_fields(answers)
    if missing:
        raise IncompleteAnswers(
            f"Cannot route claim yet, missing: {', '.join(missing)}",
            fields=missing,
        )

    # 1. Withdrawal is a retailer-side refund whatever the channel or VAT status
    if answers.claim_type == ClaimType.WITHDRAWAL:
        return _build_result(
            ClaimRoute.SELLER_REFUND,
            "Withdrawn purchases are refunded by the seller, not HMRC",
        )

    # 2. Postal imports have their own form regardless of VAT status
    if answers.channel == Channel.POSTAL:
        return _build_result(ClaimRoute.BOR286, "Postal imports are reclaimed on form BOR286")

    # 3. VAT registered claimants reclaim through their VAT return
    if answers.vat_registered is True:
        return _build_result(
            ClaimRoute.VAT_RETURN,
            "VAT registered claimants reclaim import VAT on their VAT return",
        )

    # 4. Low value courier imports
    if answers.channel == Channel.COURIER and answers.claim_type == ClaimType.LOW_VALUE:
        return _build_result(ClaimRoute.CE1179, "Low value courier imports use form C&E1179")

    # 5. Remaining courier imports
    if answers.channel == Channel.COURIER:
        if _post_dates_cutover(answers.import_date, cds_cutover_date):
            return _build_result(
                ClaimRoute.CDS,
                f"Courier imports from {cds_cutover_date.isoformat()} are claimed on CDS",
            )
        return _build_result(ClaimRoute.C285, "Courier imports are reclaimed on form C285")

    # 6. Nothing matched
    raise UnroutableAnswers(
        "No claim route matches these answers",
        fields=["channel", "vat_registered", "claim_type"],
    )


# =============================================================================
# Route Information
# =============================================================================


def get_route_info(route: ClaimRoute) -> RouteInfo:
    """Get the catalog entry for a route."""
    return ROUTE_CATALOG[route]


def get_next_steps(route: ClaimRoute) -> list[str]:
    """Filing steps for a route."""
    return list(ROUTE_CATALOG[route].process)


def get_routing_explanation(route: ClaimRoute) -> str:
    """One-line explanation of a route for the review screen."""
    info = ROUTE_CATALOG[route]
    return f"{info.name}: {info.description}"


def get_alternative_routes(
    answers: "AnswerModel",
    cds_cutover_date: Optional[date] = None,
) -> list[RouteInfo]:
    """
    Other routes worth knowing about for these answers.

    A withdrawal refused by the seller can still go to the HMRC route the
    channel would give; low value courier claims can try the seller first;
    courier claims around the cutover may need the other courier form.
    """
    try:
        primary = resolve_route(answers, cds_cutover_date)
    except (IncompleteAnswers, UnroutableAnswers):
        return []

    alternatives: list[ClaimRoute] = []

    if primary.route == ClaimRoute.SELLER_REFUND:
        fallback = answers.model_copy(update={"claim_type": ClaimType.OVERPAYMENT})
        try:
            alternatives.append(resolve_route(fallback, cds_cutover_date).route)
        except (IncompleteAnswers, UnroutableAnswers):
            logger.debug("No HMRC fallback for withdrawal: channel/VAT status not answered")

    elif primary.route == ClaimRoute.CE1179:
        alternatives.append(ClaimRoute.SELLER_REFUND)

    elif primary.route == ClaimRoute.C285 and cds_cutover_date is not None:
        alternatives.append(ClaimRoute.CDS)

    elif primary.route == ClaimRoute.CDS:
        alternatives.append(ClaimRoute.C285)

    return [ROUTE_CATALOG[route] for route in alternatives]


# =============================================================================
# Courier Playbooks
# =============================================================================


_REQUEST_EMAIL_TEMPLATE = """Subject: Request for MRN and EORI for Import Duty Refund

Dear {courier} Customer Service,

I am writing to request the Movement Reference Number (MRN) and Economic Operator Registration and Identification (EORI) number for a recent import that I believe was overcharged for VAT and duty.

Import Details:
- Tracking Number: {tracking_number}
- Import Date: {import_date}
- Value: £{value}
- Description: {description}

I need these details to submit a refund claim to HMRC. Please provide:
1. The 18-character MRN
2. The declarant's EORI number

Thank you for your assistance.

Best regards,
{your_name}
{your_email}
{your_phone}"""

_EMAIL_PLACEHOLDERS = {
    "tracking_number": "[TRACKING_NUMBER]",
    "import_date": "[IMPORT_DATE]",
    "value": "[VALUE]",
    "description": "[DESCRIPTION]",
    "your_name": "[YOUR_NAME]",
    "your_email": "[YOUR_EMAIL]",
    "your_phone": "[YOUR_PHONE]",
}


@dataclass(frozen=True)
class CourierPlaybook:
    """How to get the MRN and EORI for a courier import out of the courier."""
    courier: Courier
    name: str
    contact: str
    portal: str
    phone: str
    response_time: str
    instructions: tuple[str, ...] = ()
    tips: tuple[str, ...] = ()

    def request_email(self, details: Optional[dict] = None) -> str:
        """
        Draft the email asking the courier for the MRN and EORI.

        Args:
            details: Values for tracking_number, import_date, value,
                description, your_name, your_email and your_phone.
                Anything missing is left as a bracketed placeholder.
        """
        values = dict(_EMAIL_PLACEHOLDERS)
        values.update({key: str(value) for key, value in (details or {}).items()
                       if key in _EMAIL_PLACEHOLDERS and value is not None})
        return _REQUEST_EMAIL_TEMPLATE.format(courier=self.name, **values)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "courier": self.courier.value,
            "name": self.name,
            "contact": self.contact,
            "portal": self.portal,
            "phone": self.phone,
            "response_time": self.response_time,
            "instructions": list(self.instructions),
            "tips": list(self.tips),
            "request_email": self.request_email(),
        }


# Royal Mail has no playbook: postal claims go through the charge notice
COURIER_PLAYBOOKS: dict[Courier, CourierPlaybook] = {
    Courier.DHL: CourierPlaybook(
        courier=Courier.DHL,
        name="DHL",
        contact="customercare@dhl.com",
        portal="https://www.dhl.com/contact-us",
        phone="0344 248 0844",
        response_time="2-3 business days",
        instructions=(
            "Contact DHL Customer Service via email or phone",
            "Provide your tracking number and import details",
            "Request both MRN and EORI numbers",
            "Keep a record of all correspondence",
            "Follow up if you don't receive a response within 5 business days",
        ),
        tips=(
            "DHL typically responds within 2-3 business days",
            "Be specific about needing both MRN and EORI",
            "Include your tracking number in all communications",
            "Keep copies of all emails and reference numbers",
        ),
    ),
    Courier.FEDEX: CourierPlaybook(
        courier=Courier.FEDEX,
        name="FedEx",
        contact="customer.service@fedex.com",
        portal="https://www.fedex.com/en-gb/customer-support.html",
        phone="0345 600 6000",
        response_time="1-2 business days",
        instructions=(
            "Use FedEx Customer Service portal or email",
            "Provide your tracking number and shipment details",
            "Request both MRN and EORI numbers",
            "Use their online support system for faster response",
            "Follow up via phone if email response is slow",
        ),
        tips=(
            "FedEx has a good online support system",
            "Try their live chat feature for immediate assistance",
            "Be prepared to provide detailed shipment information",
            "Keep all reference numbers and case IDs",
        ),
    ),
    Courier.UPS: CourierPlaybook(
        courier=Courier.UPS,
        name="UPS",
        contact="customer.service@ups.com",
        portal="https://www.ups.com/gb/en/support/contact-us.page",
        phone="03457 877 877",
        response_time="2-4 business days",
        instructions=(
            "Contact UPS Customer Service via their support portal",
            "Provide your tracking number and import details",
            "Request both MRN and EORI numbers",
            "Use their online case management system",
            "Follow up if you don't receive a response within 3 business days",
        ),
        tips=(
            "UPS has a comprehensive online support system",
            "Create an account on their website for better tracking",
            "Use their case management system to track your request",
            "Be specific about needing customs documentation",
        ),
    ),
}


def get_courier_playbook(courier: Optional[Courier]) -> Optional[CourierPlaybook]:
    """Playbook for a courier, or None when there isn't one."""
    if courier is None:
        return None
    return COURIER_PLAYBOOKS.get(Courier(courier))


# =============================================================================
# Deadlines
# =============================================================================


@dataclass
class DeadlineStatus:
    """Whether a route's filing deadline is still open."""
    is_eligible: bool
    days_remaining: Optional[int]
    deadline: Optional[date]
    message: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "is_eligible": self.is_eligible,
            "days_remaining": self.days_remaining,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "message": self.message,
        }


def check_deadline(
    route: ClaimRoute,
    import_date: Optional[date],
    today: Optional[date] = None,
) -> DeadlineStatus:
    """
    Check a route's filing deadline counted from the import date.

    Routes without a fixed deadline are always eligible. When the import
    date is unknown the deadline cannot be computed and the claim is
    treated as eligible.
    """
    info = ROUTE_CATALOG[route]
    today = today or date.today()

    if info.deadline_days is None:
        return DeadlineStatus(
            is_eligible=True,
            days_remaining=None,
            deadline=None,
            message=f"No fixed deadline for {info.name}",
        )

    if import_date is None:
        return DeadlineStatus(
            is_eligible=True,
            days_remaining=None,
            deadline=None,
            message="Import date not provided, deadline cannot be checked",
        )

    deadline = import_date + timedelta(days=info.deadline_days)
    days_remaining = (deadline - today).days

    if days_remaining > 0:
        message = f"You have {days_remaining} days remaining to submit your claim"
    else:
        message = f"The deadline for this type of claim has passed ({-days_remaining} days overdue)"

    return DeadlineStatus(
        is_eligible=days_remaining > 0,
        days_remaining=days_remaining,
        deadline=deadline,
        message=message,
    )
