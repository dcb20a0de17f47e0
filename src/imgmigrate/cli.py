"""Command-line entry point for the image migration."""

from __future__ import annotations

import argparse
import logging
import os
from datetime import datetime
from typing import Optional, Sequence, Tuple

from .core.controller import MigrationConfig, MigrationController
from .core.errors import DatasetError
from .core.logger import get_logger, initialize_logging


def _field_list(value: str) -> Tuple[str, ...]:
    fields = tuple(part.strip() for part in value.split(",") if part.strip())
    if not fields:
        raise argparse.ArgumentTypeError("expected at least one field name")
    return fields


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _positive_float(value: str) -> float:
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")
    return number


def build_parser() -> argparse.ArgumentParser:
    defaults = MigrationConfig()
    parser = argparse.ArgumentParser(
        prog="imgmigrate",
        description="Download every remote image referenced by an article CSV and rewrite the "
                    "articles to point at the local copies.",
    )
    parser.add_argument("--input", default=defaults.input_path, help="Input article CSV (never modified)")
    parser.add_argument("--output", default=defaults.output_path, help="Output CSV with local image paths")
    parser.add_argument(
        "--storage-root",
        default=defaults.storage_root,
        help="Directory where downloaded images are stored",
    )
    parser.add_argument(
        "--public-prefix",
        default=None,
        help="URL prefix for local images (defaults to the storage root directory name)",
    )
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        default=defaults.concurrency,
        help="Maximum number of simultaneous downloads",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_float,
        default=defaults.timeout,
        help="End-to-end timeout per image in seconds, redirects included",
    )
    parser.add_argument(
        "--max-redirects",
        type=int,
        default=defaults.max_redirects,
        help="Maximum redirect hops per image",
    )
    parser.add_argument(
        "--progress-interval",
        type=_positive_int,
        default=defaults.progress_interval,
        help="Log progress every N completed images",
    )
    parser.add_argument(
        "--fields",
        type=_field_list,
        default=defaults.body_fields,
        help="Comma-separated body columns to scan for embedded images",
    )
    parser.add_argument(
        "--primary-field",
        default=defaults.primary_field,
        help="Column holding the article's main image URL",
    )
    parser.add_argument("--key-field", default=defaults.key_field, help="Column holding the record identity")
    manifest = parser.add_mutually_exclusive_group()
    manifest.add_argument("--manifest", default=None, help="Path of the JSONL outcome manifest")
    manifest.add_argument("--no-manifest", action="store_true", help="Do not write an outcome manifest")
    parser.add_argument("--log-dir", default="logs", help="Directory for log files and error reports")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging on the console")
    return parser


def config_from_args(args: argparse.Namespace) -> MigrationConfig:
    return MigrationConfig(
        input_path=args.input,
        output_path=args.output,
        storage_root=args.storage_root,
        public_prefix=args.public_prefix,
        concurrency=args.concurrency,
        timeout=args.timeout,
        max_redirects=args.max_redirects,
        progress_interval=args.progress_interval,
        body_fields=tuple(args.fields),
        primary_field=args.primary_field,
        key_field=args.key_field,
        use_manifest=not args.no_manifest,
        manifest_path=args.manifest,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    initialize_logging(args.log_dir, logging.DEBUG if args.verbose else logging.INFO)
    log = get_logger("cli")
    config = config_from_args(args)

    controller = MigrationController(config, logger=get_logger("migration"))
    try:
        controller.run()
    except DatasetError as exc:
        log.error(f"Migration aborted: {exc}")
        log.error("No output was written")
        return 1
    finally:
        controller.close()

    if controller.errors.errors:
        report = os.path.join(args.log_dir, f"migration_errors_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt")
        controller.errors.save_error_report(report)
    return 0
