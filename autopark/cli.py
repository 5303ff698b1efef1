# File: autopark/cli.py
"""
Command line entry point for the scheduled billing jobs and QR tooling

    autopark-billing generate-invoices --month 5 --year 2026
    autopark-billing process-overdue
    autopark-billing quote --lot LOT-1 --hours 3.5 --rate-type VIP
    autopark-billing qr-create --user u1 --vehicle KA01AB1234 --type EXIT
    autopark-billing qr-validate "PARKTRACK|u1|KA01AB1234|1767225600000|EXIT|..."
"""

from pathlib import Path
from decimal import Decimal
from typing import List, Optional
import argparse
import logging
import sys

from .domain.exceptions import BillingError
from .domain.models import RateType
from .domain.qr_security import QRSecurityCodec, QRType
from .application.dtos import BatchResult
from .infrastructure.config import BillingConfig
from .infrastructure.factories import StoreFactory, ServiceFactory


logger = logging.getLogger("autopark")


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autopark-billing",
        description="Parking billing jobs: invoices, overdue charges, quotes and QR tokens"
    )
    parser.add_argument('--config', type=Path, default=None,
                        help='YAML config file (defaults to $AUTOPARK_CONFIG)')
    parser.add_argument('--store', choices=['mongo', 'memory'], default='mongo',
                        help='Backing store for ledgers and invoices')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    commands = parser.add_subparsers(dest='command', required=True)

    invoices = commands.add_parser('generate-invoices', help='Generate monthly invoices for all drivers')
    invoices.add_argument('--month', type=int, required=True)
    invoices.add_argument('--year', type=int, required=True)
    invoices.add_argument('--user', default=None, help='Only this owner')

    commands.add_parser('process-overdue', help='Raise late-fee charges on overdue invoices')

    quote = commands.add_parser('quote', help='Estimate the charge for a planned stay')
    quote.add_argument('--lot', required=True)
    quote.add_argument('--hours', type=Decimal, required=True)
    quote.add_argument('--rate-type', choices=[t.value for t in RateType], default=RateType.NORMAL.value)

    create = commands.add_parser('qr-create', help='Issue a signed QR token')
    create.add_argument('--user', required=True)
    create.add_argument('--vehicle', required=True)
    create.add_argument('--type', choices=[t.value for t in QRType], default=QRType.ENTRY.value)

    validate = commands.add_parser('qr-validate', help='Validate a scanned QR string')
    validate.add_argument('qr_string')

    return parser


def _report_batch(label: str, result: BatchResult) -> int:
    if result.error is not None:
        print(f"{label} failed: {result.error.value} {result.message}")
        return 1

    print(f"{label}: {result.success_count} users processed, {len(result.items)} records")
    for failure in result.failures:
        print(f"  {failure.user_id}: {failure.error.value} {failure.message}")
    return 1 if result.failures else 0


def run(args: argparse.Namespace, config: BillingConfig) -> int:
    if args.command in ('qr-create', 'qr-validate'):
        codec = QRSecurityCodec(
            config.qr_secret,
            acceptance_window=config.qr_acceptance_window,
            display_lifetime=config.qr_display_lifetime
        )
        if args.command == 'qr-create':
            token = codec.create_token(args.user, args.vehicle, QRType(args.type))
            print(token.to_qr_string())
            return 0

        validation, token = codec.validate_and_parse(args.qr_string)
        print(validation.value)
        if token is not None and validation.is_valid:
            print(f"user={token.user_id} vehicle={token.vehicle_number} type={token.qr_type.value}")
        return 0 if validation.is_valid else 1

    if args.store == 'memory':
        stores = StoreFactory.create_in_memory(config)
    else:
        stores = StoreFactory.create_mongo(config)
    services = ServiceFactory(config, stores)

    if args.command == 'generate-invoices':
        generator = services.invoice_generator()
        if args.user:
            result = generator.generate_monthly_invoice(args.user, args.month, args.year)
            if not result.success:
                print(f"Invoice failed: {result.error.value} {result.message}")
                return 1
            invoice = result.value
            print(f"{invoice.invoice_number} total={invoice.total_amount} status={invoice.payment_status.value}")
            return 0
        return _report_batch("Invoices", generator.generate_monthly_invoices(args.month, args.year))

    if args.command == 'process-overdue':
        return _report_batch("Overdue", services.overdue_processor().process_overdue_invoices())

    if args.command == 'quote':
        result = services.parking_service().quote(args.lot, args.hours, RateType(args.rate_type))
        if not result.success:
            print(f"Quote failed: {result.error.value} {result.message}")
            return 1
        print(result.value)
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = BillingConfig.load(args.config)
        return run(args, config)
    except (BillingError, OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
