"""CLI entry point for the conformance runner.

    api-conformance run scenarii/es_compatibility --engine quickwit
    python -m api_conformance.cli validate scenarii/
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .config import ExecutionConfig, load_engines
from .errors import ConfigurationError, ParseError
from .reporting.json_reporter import JsonReporter
from .runner.dispatcher import Dispatcher
from .scenario.suite import load_suite
from .scenario.validator import validate_scenario

EXIT_FAILED = 1
EXIT_ABORTED = 2


def configure_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)-7s %(threadName)s %(name)s: %(message)s",
    )


@click.group()
@click.option("-v", "--verbose", count=True, help="-v for progress, -vv for HTTP traffic.")
def main(verbose: int) -> None:
    """Run declarative REST API scenarios against several search engines."""
    configure_logging(verbose)


@main.command()
@click.argument("suite", type=click.Path(exists=True, path_type=Path))
@click.option("-e", "--engine", "engines", multiple=True, help="Engine to run (repeatable). Default: all.")
@click.option("-c", "--engines-config", type=click.Path(path_type=Path), help="YAML engine configuration.")
@click.option("-t", "--test", "tests", multiple=True, help="Glob selecting test files (repeatable).")
@click.option("--timeout", type=float, default=30.0, show_default=True, help="Per-request timeout in seconds.")
@click.option("--retry-delay", type=float, default=0.5, show_default=True, help="Delay between retries in seconds.")
@click.option("--save-report", is_flag=True, help="Save the full JSON report to a file.")
@click.option("--report-dir", type=click.Path(path_type=Path), help="Directory for saved reports.")
@click.option("--pretty", is_flag=True, help="Pretty print JSON output.")
def run(
    suite: Path,
    engines: tuple[str, ...],
    engines_config: Optional[Path],
    tests: tuple[str, ...],
    timeout: float,
    retry_delay: float,
    save_report: bool,
    report_dir: Optional[Path],
    pretty: bool,
) -> None:
    """Run a scenario file or suite directory."""
    reporter = JsonReporter()
    config = ExecutionConfig(
        request_timeout=timeout,
        retry_delay=retry_delay,
        save_report=save_report,
        report_dir=report_dir,
        pretty_output=pretty,
    )

    try:
        registry = load_engines(engines_config)
        scenarios = load_suite(suite, tests)
        dispatcher = Dispatcher(registry, config)
        run_report = dispatcher.run_scenarios(scenarios, engines)
    except (ParseError, ConfigurationError) as e:
        output_error(str(e), pretty)
        sys.exit(EXIT_ABORTED)

    report = reporter.generate(suite_name=str(suite), run_report=run_report)

    report_path = None
    if config.save_report:
        target = (config.report_dir or Path(".")) / f"conformance_report_{suite.stem}.json"
        report_path = str(reporter.save(report, target))

    click.echo(run_report.summary(), err=True)
    output = reporter.generate_cli_output(report, report_path)
    click.echo(json.dumps(output, indent=2 if pretty else None, ensure_ascii=False))

    if not output["success"]:
        sys.exit(EXIT_FAILED)


@main.command()
@click.argument("suite", type=click.Path(exists=True, path_type=Path))
@click.option("-c", "--engines-config", type=click.Path(path_type=Path), help="YAML engine configuration.")
def validate(suite: Path, engines_config: Optional[Path]) -> None:
    """Parse scenarios and report problems without sending requests."""
    try:
        scenarios = load_suite(suite)
        known = load_engines(engines_config).names if engines_config else None
    except (ParseError, ConfigurationError) as e:
        output_error(str(e), False, command="validate")
        sys.exit(EXIT_ABORTED)

    problems = 0
    for scenario in scenarios:
        result = validate_scenario(scenario, known)
        for issue in result.errors + result.warnings:
            click.echo(f"{issue.severity.upper()} {issue.path}: {issue.message}", err=True)
        problems += result.error_count

    steps = sum(s.total_steps for s in scenarios)
    output = {
        "success": problems == 0,
        "command": "validate",
        "data": {"scenarios": len(scenarios), "steps": steps, "errors": problems},
        "message": "Valid" if problems == 0 else f"{problems} errors",
    }
    click.echo(json.dumps(output, ensure_ascii=False))
    if problems:
        sys.exit(EXIT_ABORTED)


def output_error(message: str, pretty: bool, command: str = "run") -> None:
    """Output error in CLI JSON format."""
    output = {
        "success": False,
        "command": command,
        "data": None,
        "message": message,
    }
    click.echo(json.dumps(output, indent=2 if pretty else None, ensure_ascii=False))


if __name__ == "__main__":
    main()
