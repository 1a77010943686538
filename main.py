#!/usr/bin/env python3
"""
Finops Inbox Service

Command line entrypoint: scan the Drive inbox, run extraction for a document,
import software costs from CSV, print a month's P&L, or serve the HTTP API.
"""

import argparse
import json
import logging
import sys

from src.adapters.google_drive import DriveError
from src.common.metrics import register_event_metrics
from src.config.loader import cfg, load_config, validate_config
from src.inbox.extraction import process_document
from src.jobs.drive_inbox_scan import run_drive_inbox_scan
from src.jobs.software_costs_csv import CSVFormatError, run_software_costs_import
from src.ledger.pl import get_monthly_pl


# Configure structured logging
def setup_logging():
    """Setup structured logging based on configuration."""
    log_level = cfg("global.log_level", "INFO")
    log_format = cfg("global.log_format", "json")

    if log_format == "json":
        import structlog

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format="%(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )


logger = logging.getLogger(__name__)


def _print(result) -> None:
    print(json.dumps(result, indent=2, default=str))


def cmd_scan(args) -> int:
    validate_config(require_drive=True, require_extraction=False)
    try:
        _print(run_drive_inbox_scan(month=args.month))
    except DriveError as e:
        logger.error(f"Scan failed: {e}")
        return 1
    return 0


def cmd_process(args) -> int:
    validate_config(require_drive=False, require_extraction=True)
    result = process_document(args.document_id)
    _print(result)
    return 0 if result.get("success") else 1


def cmd_import_csv(args) -> int:
    validate_config(require_drive=False, require_extraction=False)
    try:
        with open(args.path, encoding="utf-8-sig") as f:
            result = run_software_costs_import(f.read(), dry_run=args.dry_run)
    except (OSError, CSVFormatError) as e:
        logger.error(f"CSV import failed: {e}")
        return 1
    _print(result)
    return 0


def cmd_pl(args) -> int:
    validate_config(require_drive=False, require_extraction=False)
    _print(get_monthly_pl(args.month))
    return 0


def cmd_serve(args) -> int:
    import uvicorn

    validate_config(require_drive=False, require_extraction=False)
    port = args.port or cfg("server.port", 8000)
    logger.info(f"Starting HTTP API on port {port}")
    uvicorn.run("src.server:app", host=args.host, port=port, log_level="info")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Finops Inbox Service")
    parser.add_argument("--config", default="config/app.yaml", help="Configuration file path")
    parser.add_argument("--validate-config", action="store_true", help="Validate configuration and exit")
    sub = parser.add_subparsers(dest="command")

    scan = sub.add_parser("scan", help="Scan the Drive inbox for new documents")
    scan.add_argument("--month", help="Fallback month for undated files (YYYY-MM)")
    scan.set_defaults(func=cmd_scan)

    process = sub.add_parser("process", help="Run extraction for one document")
    process.add_argument("document_id")
    process.set_defaults(func=cmd_process)

    import_csv = sub.add_parser("import-csv", help="Import monthly software costs from CSV")
    import_csv.add_argument("path")
    import_csv.add_argument("--kind", choices=["software"], default="software")
    import_csv.add_argument("--dry-run", action="store_true", help="Match rows without writing")
    import_csv.set_defaults(func=cmd_import_csv)

    pl = sub.add_parser("pl", help="Print the P&L for a month")
    pl.add_argument("--month", required=True, help="Month (YYYY-MM)")
    pl.set_defaults(func=cmd_pl)

    serve = sub.add_parser("serve", help="Serve the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int)
    serve.set_defaults(func=cmd_serve)

    return parser


def main():
    """Main entrypoint for the Finops Inbox service."""
    parser = build_parser()
    args = parser.parse_args()

    load_config(args.config)
    setup_logging()

    try:
        if args.validate_config:
            validate_config()
            logger.info("Configuration is valid")
            return 0

        if not getattr(args, "func", None):
            parser.print_help()
            return 1

        register_event_metrics()
        return args.func(args)

    except ValueError as e:
        logger.error(f"{e}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    exit(main())
