from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from .brief_text import render_with_active_template
from .config import Settings
from .decoder import extract_raw_parameter
from .pipeline import build_brief_for_settings
from .storage import write_json


logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _parse_now(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid --now value '{raw}'; expected an ISO datetime.") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Decode a status brief payload and print the canonical brief.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("-d", "--data", default=None, help="Raw data parameter value.")
    source.add_argument("-u", "--url", default=None, help="Full page URL carrying the data parameter.")
    parser.add_argument("--now", type=_parse_now, default=None, help="Clock override as an ISO datetime.")
    parser.add_argument("--no-cache", action="store_true", help="Do not read or write the last-good store.")
    parser.add_argument("-o", "--output", type=Path, default=None, help="Also write the brief to this JSON file.")
    parser.add_argument("--text", action="store_true", help="Print the brief as rendered text instead of JSON.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    _configure_logging(settings.log_level)

    if args.no_cache:
        settings = replace(settings, enable_last_good_cache=False)
    else:
        settings.ensure_state_paths()

    raw = args.data
    if args.url is not None:
        raw = extract_raw_parameter(args.url, settings.data_param_name)

    result = build_brief_for_settings(settings, raw, now=args.now)
    logger.info("Built brief from %s (shape=%s).", result.source, result.shape)

    if args.output is not None:
        write_json(args.output, result.brief)
    if args.text:
        rendered = render_with_active_template(settings, result.brief)
        if not rendered["ok"]:
            logger.error("Could not render brief text: %s", rendered["error"])
            return 1
        sys.stdout.write(rendered["text"] + "\n")
        return 0

    json.dump(result.to_payload(), sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
