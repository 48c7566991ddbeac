"""CLI entry point for the GEO brand comprehension diagnosis.

Usage:
    python run.py                              # Prompt for the brand name
    python run.py "Acme"                       # Diagnose a brand
    python run.py "Acme" --output-dir reports  # Export the report into reports/
    python run.py "Acme" --no-export           # Print only, write no file
    python run.py "Acme" --verbose-json        # Score records as raw JSON
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from geo_diagnosis.config import get_settings
from geo_diagnosis.errors import DiagnosisError
from geo_diagnosis.graphs.diagnosis_workflow import run_diagnosis
from geo_diagnosis.logging_config import setup_logging
from geo_diagnosis.utils.console import (
    StageStatus,
    console,
    print_error,
    print_final_report,
    print_header,
    print_info,
    print_langsmith_status,
    print_score_table,
    set_verbose_json_output,
)
from geo_diagnosis.utils.export import export_report


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="GEO: diagnose how well a generative model understands a brand",
    )
    parser.add_argument(
        "brand",
        nargs="?",
        default=None,
        help="Brand name to diagnose. Prompted for when omitted.",
    )
    parser.add_argument(
        "--output-dir",
        default=".",
        help="Directory for the exported {brand}-geo-report.md (default: current directory).",
    )
    parser.add_argument(
        "--no-export",
        action="store_true",
        default=False,
        help="Do not write the report file.",
    )
    parser.add_argument(
        "--verbose-json",
        action="store_true",
        default=False,
        help="Show the score records as raw JSON instead of a table.",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    set_verbose_json_output(args.verbose_json)
    settings = get_settings()
    setup_logging(settings.log_level)

    brand = args.brand
    if brand is None:
        brand = console.input("[bold bright_white]Brand name: [/bold bright_white]")
    brand = brand.strip()

    print_header(brand or "-")
    print_langsmith_status(settings.langchain_tracing_v2)

    try:
        with StageStatus() as status:
            result = await run_diagnosis(brand, on_stage=status.update)
    except DiagnosisError as exc:
        print_error(exc.message)
        print_info("Fix the problem and run the diagnosis again.")
        return 1
    except Exception as exc:
        print_error(f"{type(exc).__name__}: {exc}")
        return 1

    print_score_table(result)
    print_final_report(result.report)

    if not args.no_export:
        path = export_report(result, args.output_dir)
        print_info(f"Report saved to {path}")
    return 0


def main(argv: list[str] | None = None) -> None:
    sys.exit(asyncio.run(run(parse_args(argv))))


if __name__ == "__main__":
    main()
