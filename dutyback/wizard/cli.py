#!/usr/bin/env python3
"""
CLI for routing refund claims.

Usage:
    python -m dutyback.wizard.cli --channel courier --vat no --claim-type overpayment
    python -m dutyback.wizard.cli --channel postal --vat no --claim-type overpayment \\
        --charge-reference RM123456 --evidence invoice proof_of_postal_charge --save
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from ..routing.claim_routing import (
    check_deadline,
    get_alternative_routes,
    get_courier_playbook,
    get_route_info,
)
from ..routing.schema import Identifier
from ..storage import get_claim_store
from ..utils.config import settings
from .state_manager import ClaimWizardController
from .validation import WIZARD_STEPS


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Work out which refund route an import claim goes through',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Courier import, not VAT registered
  python -m dutyback.wizard.cli --channel courier --vat no --claim-type overpayment

  # Courier import after the CDS cutover
  python -m dutyback.wizard.cli --channel courier --vat no --claim-type overpayment \\
      --import-date 2025-03-01 --cds-cutover 2024-01-01

  # Postal import, run the wizard to the end and store the claim
  python -m dutyback.wizard.cli --channel postal --vat no --claim-type overpayment \\
      --charge-reference RM123456 --evidence invoice proof_of_postal_charge --save

  # Pretty print output
  python -m dutyback.wizard.cli --claim-type withdrawal --pretty
        """
    )

    # Routing answers
    parser.add_argument(
        '--channel',
        type=str,
        choices=['courier', 'postal'],
        help='How the package arrived'
    )
    parser.add_argument(
        '--vat',
        type=str,
        help='VAT registered? (yes/no)'
    )
    parser.add_argument(
        '--claim-type',
        type=str,
        help='overpayment, rejected_import, withdrawal or low_value'
    )

    # Identifiers
    parser.add_argument(
        '--courier',
        type=str,
        help='Courier (DHL, FedEx, UPS, Royal Mail)'
    )
    parser.add_argument(
        '--mrn',
        type=str,
        help='Movement Reference Number'
    )
    parser.add_argument(
        '--eori',
        type=str,
        help='EORI number'
    )
    parser.add_argument(
        '--charge-reference',
        type=str,
        help='Postal charge reference'
    )
    parser.add_argument(
        '--import-date',
        type=str,
        help='Import date (YYYY-MM-DD)'
    )
    parser.add_argument(
        '--evidence',
        nargs='*',
        default=[],
        help='Evidence on hand (space-separated, e.g. invoice transport_doc)'
    )
    parser.add_argument(
        '--seller-acknowledged',
        action='store_true',
        help='Confirm the refund will be requested from the seller first'
    )

    # Configuration
    parser.add_argument(
        '--cds-cutover',
        type=str,
        help='CDS cutover date (YYYY-MM-DD); overrides DUTYBACK_CDS_CUTOVER_DATE'
    )
    parser.add_argument(
        '--save',
        action='store_true',
        help='Run the wizard to the end and store the claim (draft if incomplete)'
    )

    # Output options
    parser.add_argument(
        '--output',
        '-o',
        type=str,
        help='Output file path (default: print to stdout)'
    )
    parser.add_argument(
        '--pretty',
        action='store_true',
        help='Pretty print JSON output'
    )

    # Logging
    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    return parser.parse_args(argv)


def answers_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Collect the answers given on the command line."""
    answers = {
        'channel': args.channel,
        'vat_registered': args.vat,
        'claim_type': args.claim_type,
        'courier': args.courier,
        'mrn': args.mrn,
        'eori': args.eori,
        'charge_reference': args.charge_reference,
        'import_date': args.import_date,
    }
    answers = {key: value for key, value in answers.items() if value is not None}
    if args.evidence:
        answers['evidence'] = args.evidence
    if args.seller_acknowledged:
        answers['seller_refund_acknowledged'] = True
    return answers


def run_to_completion(controller: ClaimWizardController) -> None:
    """Advance the wizard until it completes or a step is rejected."""
    while not controller.is_complete:
        result = controller.advance()
        if not result.ok:
            return


def build_report(controller: ClaimWizardController) -> dict:
    """Route, deadline, alternatives, courier playbook and outstanding step errors as a dict."""
    route_result, signal = controller.route_preview()
    answers = controller.answers

    report: dict = {
        'claim_id': controller.claim_id,
        'answers': answers.to_record(),
        'route_result': route_result.to_dict() if route_result else None,
        'signal': signal.to_dict() if signal else None,
        'status': controller.claim_status().value,
        'current_step': controller.current_step,
        'step_errors': {
            step['id']: [e.model_dump() for e in controller.step_errors(step['id'])]
            for step in WIZARD_STEPS
            if not controller.step_completion[step['id']]
        },
    }

    if route_result:
        report['route'] = get_route_info(route_result.route).to_dict()
        report['deadline'] = check_deadline(route_result.route, answers.import_date).to_dict()
        report['missing_evidence'] = controller.missing_evidence()
        report['alternatives'] = [
            info.to_dict() for info in get_alternative_routes(answers, controller.cds_cutover_date)
        ]

        # Courier claims get the playbook for asking the courier for the MRN/EORI
        if Identifier.MRN in route_result.required_identifiers:
            playbook = get_courier_playbook(answers.applicable_courier)
            if playbook:
                report['courier_playbook'] = playbook.to_dict()

    return report


def main(argv=None):
    """Main CLI entry point."""
    load_dotenv()
    args = parse_args(argv)

    # Setup logging
    setup_logging(args.verbose or settings.debug)
    logger = logging.getLogger(__name__)

    try:
        cutover = date.fromisoformat(args.cds_cutover) if args.cds_cutover else None
        controller = ClaimWizardController(cds_cutover_date=cutover)

        updated = controller.update_answers(answers_from_args(args))
        logger.info(f"Answers given: {', '.join(updated) if updated else 'none'}")

        if args.save:
            store = get_claim_store()
            controller.add_sink(store)
            run_to_completion(controller)
            if not controller.is_complete:
                store.save_draft(controller)
                logger.info(f"Claim incomplete, saved as draft: {controller.claim_id}")

        report = build_report(controller)

        # Convert to JSON
        indent = 2 if args.pretty else None
        json_output = json.dumps(report, indent=indent, ensure_ascii=False)

        # Output
        if args.output:
            output_path = Path(args.output)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(json_output)
            logger.info(f"Output written to: {output_path}")
        else:
            print(json_output)

        # Print summary
        if args.verbose:
            print("\n" + "="*60, file=sys.stderr)
            print("CLAIM SUMMARY", file=sys.stderr)
            print("="*60, file=sys.stderr)
            print(controller.get_summary(), file=sys.stderr)
            print("="*60, file=sys.stderr)

    except Exception as e:
        logger.error(f"Error routing claim: {e}", exc_info=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
