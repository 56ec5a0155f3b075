import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from schema_codegen.colored_logging import log_progress, log_section, log_success, setup_colored_logging
from schema_codegen.config_validation import load_config
from schema_codegen.domain.models import GenerationResult, RunStatus, Severity
from schema_codegen.exceptions import ConfigurationError, DatabaseConnectionError, SchemaCodegenError
from schema_codegen.file_sink import FileSink
from schema_codegen.pipeline import CancellationToken, generate

logger = logging.getLogger(__name__)

EXIT_CODES = {
    RunStatus.SUCCESS: 0,
    RunStatus.FAILURE: 1,
    RunStatus.PARTIAL_FAILURE: 2,
    RunStatus.CANCELLED: 130,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schema-codegen",
        description="Generate entity classes, repository stubs and enum types from an existing database schema.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to the YAML configuration file (containing the Django 'databases' dict).",
    )
    parser.add_argument(
        "-o",
        "--output-dir",
        dest="output_dir",
        help="Directory generated files are written under. Overrides config file setting.",
    )
    parser.add_argument(
        "-t",
        "--tables",
        dest="include_tables",
        action="append",
        metavar="TABLE",
        help="Table name or glob pattern to include. Repeatable.",
    )
    parser.add_argument(
        "-e",
        "--exclude",
        dest="exclude_tables",
        action="append",
        metavar="TABLE",
        help="Table name or glob pattern to exclude. Repeatable.",
    )
    parser.add_argument("-n", "--namespace", help="Namespace prefix of generated modules.")
    parser.add_argument(
        "--template-set",
        dest="template_set",
        help="Built-in template set ('python', 'doctrine') or path to a template set directory.",
    )

    policy = parser.add_mutually_exclusive_group()
    policy.add_argument(
        "-f",
        "--force",
        dest="conflict_policy",
        action="store_const",
        const="force-overwrite",
        help="Overwrite files that already exist.",
    )
    policy.add_argument(
        "-d",
        "--dry-run",
        dest="conflict_policy",
        action="store_const",
        const="dry-run",
        help="Render everything and report the planned files without writing.",
    )

    parser.add_argument(
        "--no-repository",
        dest="generate_repository",
        action="store_false",
        default=None,
        help="Do not generate repository stubs.",
    )
    parser.add_argument(
        "--no-enums",
        dest="emit_enums",
        action="store_false",
        default=None,
        help="Map enumerated columns to text instead of generating enum types.",
    )
    parser.add_argument("-w", "--workers", type=int, help="Number of render/write worker threads.")
    parser.add_argument("--timeout", type=float, help="Cancel the run after this many seconds.")
    parser.add_argument("--report", help="Write the generation result as YAML to this file.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose DEBUG logging.",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output (useful for CI/CD environments).",
    )
    return parser


def print_summary(result: GenerationResult, stream=None) -> None:
    stream = stream or sys.stdout
    if result.artifacts:
        width = max(len(record.status.value) for record in result.artifacts)
        print("Artifacts:", file=stream)
        for record in result.artifacts:
            print(f"  {record.status.value:<{width}}  {record.kind.value:<10}  {record.path}", file=stream)

    if result.diagnostics:
        print("Diagnostics:", file=stream)
        for diagnostic in result.diagnostics:
            where = diagnostic.table_name or "-"
            if diagnostic.artifact:
                where = f"{where}/{diagnostic.artifact}"
            print(f"  {diagnostic.severity.value:<7}  {diagnostic.code:<28}  {where}: {diagnostic.message}", file=stream)

    warnings = sum(1 for d in result.diagnostics if d.severity == Severity.WARNING)
    errors = sum(1 for d in result.diagnostics if d.severity == Severity.ERROR)
    print(
        f"Status: {result.status.value} | tables: {len(result.succeeded_tables)} ok, "
        f"{len(result.failed_tables)} failed | artifacts: {len(result.artifacts)} | "
        f"warnings: {warnings} | errors: {errors}",
        file=stream,
    )


def save_report(result: GenerationResult, report_path: str) -> None:
    output_path = Path(report_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(result.to_dict(), f, sort_keys=False, allow_unicode=True)
    logger.info(f"Generation report saved to {output_path}")


def run(argv: Optional[List[str]] = None) -> int:
    """Run the command line and return the process exit code."""
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_colored_logging(level=log_level, use_colors=not args.no_color)
    if args.verbose:
        logger.debug("Verbose mode enabled. DEBUG level logging activated.")

    token = CancellationToken()
    try:
        log_progress(logger, "Loading configuration...")
        config = load_config(args.config, args)
        log_success(logger, "Configuration loaded and validated successfully.")

        options = config.to_generation_options()
        FileSink(options.output_root, options.conflict_policy).validate_output_directory()

        result = generate(options, cancel_token=token)
    except KeyboardInterrupt:
        token.cancel("interrupted")
        logger.warning("Interrupted; files written so far are kept.")
        return EXIT_CODES[RunStatus.CANCELLED]
    except ConfigurationError as e:
        logger.error(f"Configuration Error: {e}", exc_info=args.verbose)
        return 1
    except DatabaseConnectionError as e:
        logger.error(f"Database Connection Error: {e}", exc_info=args.verbose)
        return 1
    except SchemaCodegenError as e:
        logger.error(f"Error: {e}", exc_info=args.verbose)
        return 1
    except Exception as e:
        logger.error(f"An unexpected error occurred during generation: {e}", exc_info=True)
        return 1

    log_section(logger, "Summary")
    print_summary(result)
    if args.report:
        save_report(result, args.report)
    return EXIT_CODES[result.status]


def main():
    sys.exit(run())


if __name__ == "__main__":
    main()
