"""Script to load transactions into the ledger from CSV files or a backup."""

import argparse
from pathlib import Path

from bullion import LedgerService, get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)


def main():
    """Import CSV files or restore a JSON backup, then save the ledger."""
    parser = argparse.ArgumentParser(
        description="Load purchases and sales into the bullion ledger."
    )
    parser.add_argument(
        "files",
        nargs="+",
        help="CSV files with id,type,date,party,qty,rate[,taxable,tax,total] columns",
    )
    parser.add_argument(
        "--restore",
        action="store_true",
        help="Treat the single file as a JSON backup and replace the ledger with it",
    )
    parser.add_argument("--operator", default=None, help="Name for the audit log")
    args = parser.parse_args()

    service = LedgerService(operator=args.operator)
    service.load()

    if args.restore:
        if len(args.files) != 1:
            logger.error("--restore takes exactly one backup file.")
            return
        result = service.restore(args.files[0])
        if not result.ok:
            logger.error("Restore failed: %s", result.error)
            return
    else:
        for csv_path in args.files:
            if not Path(csv_path).exists():
                logger.error("CSV file not found: %s", csv_path)
                continue

            logger.info("Importing %s", csv_path)
            result = service.import_csv(csv_path)
            if not result.ok:
                logger.error("Skipped %s: %s", csv_path, result.error)
                continue
            logger.info("Finished importing %s.", csv_path)

    for warning in service.last_warnings:
        logger.warning("%s", warning)
    logger.info("Ledger now holds %s", service.snapshot())


if __name__ == "__main__":
    main()
