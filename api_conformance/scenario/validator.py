"""Scenario validator for the conformance runner.

Validates parsed Scenario objects against rules that need the whole scenario
(or the engine registry) rather than a single document.
"""

from typing import Iterable, Optional

from .schema import (
    Scenario,
    ValidationError,
    ValidationResult,
)


def validate_scenario(
    scenario: Scenario,
    known_engines: Optional[Iterable[str]] = None,
) -> ValidationResult:
    """Validate a parsed Scenario object.

    Checks:
    - Engine identifiers against the configured engines (if given)
    - Parse warnings collected from comment placement
    - Matching options set on steps without an expectation

    Args:
        scenario: Parsed Scenario to validate.
        known_engines: Engine identifiers configured for the run.

    Returns:
        ValidationResult with errors and warnings.
    """
    errors: list[ValidationError] = []
    warnings: list[ValidationError] = list(scenario.warnings)

    if known_engines is not None:
        _validate_engines(scenario, set(known_engines), errors)

    for step in scenario.steps:
        if not step.has_expectation and (step.ordered or step.ignored_fields):
            warnings.append(ValidationError(
                path=f"{scenario.source}[{step.index}]",
                message="'ordered' and ignored fields have no effect without 'expected'.",
                severity="warning",
            ))

    if not scenario.steps:
        warnings.append(ValidationError(
            path=scenario.source,
            message="No steps defined.",
            severity="warning",
        ))

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )


def _validate_engines(
    scenario: Scenario,
    known: set[str],
    errors: list[ValidationError],
) -> None:
    """Unknown engine names are configuration errors, never silent skips."""
    if scenario.engines is not None:
        for name in sorted(scenario.engines - known):
            errors.append(ValidationError(
                path=scenario.source,
                message=f"Unknown engine '{name}'. Configured: {', '.join(sorted(known))}",
            ))

    for name in sorted(k for k in scenario.contexts if k is not None and k not in known):
        errors.append(ValidationError(
            path=f"{scenario.source} (context)",
            message=f"Unknown engine '{name}'. Configured: {', '.join(sorted(known))}",
        ))

    for step in scenario.steps:
        if step.engines is None:
            continue
        path = f"{scenario.source}[{step.index}].engines"
        for name in sorted(step.engines - known):
            errors.append(ValidationError(
                path=path,
                message=f"Unknown engine '{name}'. Configured: {', '.join(sorted(known))}",
            ))
        if not step.engines & known:
            errors.append(ValidationError(
                path=path,
                message="Step applies to none of the configured engines.",
            ))
