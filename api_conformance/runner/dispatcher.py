"""Engine dispatcher - runs scenarios against every configured engine.

Each engine gets its own lane (a worker thread). Inside a lane, scenarios and
their steps run strictly in order, since later steps rely on the side effects
of earlier ones (index creation, ingestion). Lanes share nothing and run
concurrently.

Per (step, engine, method):
1. Build the request
2. Execute it with retries
3. Match status and body
4. Settle (``sleep_after``) if it passed
5. Record the outcome
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional, Union

from ..config import EngineConfig, EngineRegistry, ExecutionConfig
from ..errors import ConfigurationError, StepExecutionError
from ..reporting.run_report import OutcomeStatus, RunReport, StepOutcome
from ..scenario.schema import Scenario, ScenarioContext, Step
from ..scenario.validator import validate_scenario
from ..transport.http_client import HttpTransport
from ..transport.request_builder import PayloadLoader, RequestBuilder
from ..transport.retry_policy import RetryController, RetryPolicy, Transport
from ..validators.response_matcher import ResponseMatcher

logger = logging.getLogger(__name__)

TransportFactory = Callable[[EngineConfig], Transport]


@dataclass
class ExecutionContext:
    """State carried from step to step within one scenario on one engine lane."""
    engine: EngineConfig
    defaults: ScenarioContext
    api_root: Optional[str] = None

    @classmethod
    def start(cls, engine: EngineConfig, scenario: Scenario) -> "ExecutionContext":
        defaults = scenario.context_for(engine.name)
        return cls(engine=engine, defaults=defaults, api_root=defaults.api_root)

    def advance(self, step: Step) -> None:
        """A step's api_root becomes the default for the rest of the scenario.

        Only steps that run on this lane's engine are passed in, so a step
        restricted to other engines never moves this lane's root.
        """
        if step.api_root:
            self.api_root = step.api_root


class Dispatcher:
    """Runs scenarios across engines and aggregates a RunReport."""

    def __init__(
        self,
        registry: EngineRegistry,
        config: Optional[ExecutionConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
        payload_loader: Optional[PayloadLoader] = None,
        sleep: Callable[[float], None] = time.sleep,
        matcher: Optional[ResponseMatcher] = None,
    ):
        """Initialize dispatcher.

        Args:
            registry: Configured engines.
            config: Execution configuration.
            transport_factory: Creates the HTTP transport of a lane
                (default: a requests-backed HttpTransport).
            payload_loader: Reads ``body_from_file`` payloads.
            sleep: Used for retry delays and settle delays.
            matcher: Response matcher.
        """
        self.registry = registry
        self.config = config or ExecutionConfig()
        self.transport_factory = transport_factory or self._default_transport
        self.payload_loader = payload_loader
        self.matcher = matcher or ResponseMatcher()
        self._sleep = sleep

    def _default_transport(self, engine: EngineConfig) -> Transport:
        return HttpTransport(request_timeout=self.config.request_timeout)

    def run_scenario(
        self,
        scenario: Scenario,
        engines: Optional[Iterable[str]] = None,
    ) -> RunReport:
        """Run one scenario against the selected engines (all by default)."""
        return self.run_scenarios([scenario], engines)

    def run_scenarios(
        self,
        scenarios: list[Scenario],
        engines: Optional[Iterable[str]] = None,
    ) -> RunReport:
        """Run scenarios in order against the selected engines.

        Raises:
            ConfigurationError: If a scenario names an unknown engine or a
                step applies to none of the configured engines. Raised before
                any request is sent.
        """
        selected = self.registry.select(list(engines or []))
        self.check_configuration(scenarios)

        start = time.monotonic()
        report = RunReport(engines=[e.name for e in selected])
        workers = self.config.max_workers or len(selected)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lane") as pool:
            lanes = [pool.submit(self._run_lane, engine, scenarios) for engine in selected]
            for lane in lanes:
                report.extend(lane.result())

        report.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Run finished: %d passed, %d failed, %d skipped",
            report.passed_count, report.failed_count, report.skipped_count,
        )
        return report

    def check_configuration(self, scenarios: list[Scenario]) -> None:
        problems = []
        for scenario in scenarios:
            result = validate_scenario(scenario, self.registry.names)
            problems.extend(f"{e.path}: {e.message}" for e in result.errors)
            for warning in result.warnings:
                logger.warning("%s: %s", warning.path, warning.message)
        if problems:
            raise ConfigurationError("Invalid engine configuration:\n" + "\n".join(problems))

    def _run_lane(self, engine: EngineConfig, scenarios: list[Scenario]) -> RunReport:
        """Run every applicable step for one engine, in order."""
        report = RunReport(engines=[engine.name])
        plan: list[tuple[Scenario, list[Step]]] = []
        for scenario in scenarios:
            if not scenario.applies_to(engine.name):
                continue
            steps = [s for s in scenario.steps if s.applies_to(engine.name)]
            if steps:
                plan.append((scenario, steps))
        if not plan:
            logger.info("[%s] No applicable steps", engine.name)
            return report

        try:
            transport = self.transport_factory(engine)
        except Exception as e:
            logger.exception("[%s] Cannot create transport", engine.name)
            for scenario, steps in plan:
                for step in steps:
                    for method in step.methods:
                        outcome = self._new_outcome(scenario, step, method, engine, OutcomeStatus.FAILED)
                        outcome.error_type = type(e).__name__
                        outcome.message = f"Cannot create transport: {e}"
                        report.record(outcome)
            return report

        controller = RetryController(
            transport,
            RetryPolicy(delay=self.config.retry_delay),
            sleep=self._sleep,
        )
        builder = RequestBuilder(self.payload_loader, engine.template_variables())
        aborted = False

        try:
            for scenario, steps in plan:
                context = ExecutionContext.start(engine, scenario)
                for step in steps:
                    context.advance(step)
                    for method in step.methods:
                        if aborted and not scenario.always_run:
                            report.record(self._skipped(scenario, step, method, engine))
                            continue
                        outcome = self._execute(scenario, step, method, context, builder, controller)
                        report.record(outcome)
                        if outcome.failed and not step.accepts_any_status:
                            if not aborted:
                                logger.warning(
                                    "[%s] %s failed, skipping the remaining steps of this engine",
                                    engine.name, outcome.headline(),
                                )
                            aborted = True
        finally:
            close = getattr(transport, "close", None)
            if close is not None:
                close()

        return report

    def _execute(
        self,
        scenario: Scenario,
        step: Step,
        method: str,
        context: ExecutionContext,
        builder: RequestBuilder,
        controller: RetryController,
    ) -> StepOutcome:
        outcome = self._new_outcome(scenario, step, method, context.engine, OutcomeStatus.FAILED)
        start = time.monotonic()

        try:
            request = builder.build(
                step,
                method,
                context.engine.base_url,
                api_root=context.api_root,
                context=context.defaults,
            )
            record = controller.execute(request, step)
            outcome.attempts = record.attempts
            if record.transport_failed:
                raise record.error
            outcome.status_code = record.response.status_code
            self.matcher.match_response(record.response, step)

        except StepExecutionError as e:
            outcome.error_type = type(e).__name__
            outcome.message = str(e.args[0]) if e.args else type(e).__name__
            outcome.diff = list(getattr(e, "diff", []))
            logger.info("[%s] FAIL %s: %s", context.engine.name, outcome.headline(), outcome.message)

        except Exception as e:
            logger.exception("[%s] Unexpected error in %s", context.engine.name, outcome.headline())
            outcome.error_type = type(e).__name__
            outcome.message = f"Unexpected error: {e}"

        else:
            outcome.status = OutcomeStatus.PASSED
            logger.info("[%s] PASS %s", context.engine.name, outcome.headline())
            controller.settle(step)

        finally:
            outcome.duration_ms = int((time.monotonic() - start) * 1000)

        return outcome

    @staticmethod
    def _new_outcome(
        scenario: Scenario,
        step: Step,
        method: str,
        engine: EngineConfig,
        status: OutcomeStatus,
    ) -> StepOutcome:
        return StepOutcome(
            scenario=scenario.name,
            step_index=step.index,
            engine=engine.name,
            method=method,
            endpoint=step.endpoint,
            status=status,
            description=step.description,
        )

    def _skipped(self, scenario: Scenario, step: Step, method: str, engine: EngineConfig) -> StepOutcome:
        outcome = self._new_outcome(scenario, step, method, engine, OutcomeStatus.SKIPPED)
        outcome.message = "Skipped after an earlier failure on this engine"
        return outcome


def run_scenario(
    scenario: Union[Scenario, list[Scenario]],
    engines: Union[EngineRegistry, Mapping[str, str]],
    config: Optional[ExecutionConfig] = None,
    **kwargs,
) -> RunReport:
    """Run a scenario (or an ordered list of scenarios) against an engine set."""
    registry = engines if isinstance(engines, EngineRegistry) else EngineRegistry.from_mapping(dict(engines))
    scenarios = scenario if isinstance(scenario, list) else [scenario]
    return Dispatcher(registry, config, **kwargs).run_scenarios(scenarios)
