"""Conformance session orchestration."""
from __future__ import annotations

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from ..config import AppConfig
from ..constants import (
    EXIT_REPORT_WRITE_FAILED,
    EXIT_UNHANDLED_FAULT,
    INCOMPLETE_MESSAGE,
    STOP_KEY,
)
from ..hardware import create_device
from ..reporting import default_report_path, summary_context, summary_lines, write_results, write_summary
from ..results import ConformResults, FindingRecorder
from ..testers import (
    CapabilityTester,
    TestContext,
    check_common_members,
    check_configuration,
    connect_device,
    create_tester,
    disconnect_device,
)
from ..timing import CancellationToken, wait_for
from .watchdog import RaceResult, race_with_cancellation

logger = logging.getLogger(__name__)

Stage = Callable[[TestContext, Any], None]


def default_device_factory(config: AppConfig) -> Any:
    return create_device(config.device, config.simulator)


class TestSession:
    """Drive one capability tester through the conformance stages.

    The device client is created once, connected, exercised for the configured
    number of cycles, disconnected and released. Faults raised by a stage are
    recorded under the stage name and stop the remaining inner stages; the
    results file and summary are always produced.
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        config: AppConfig,
        *,
        tester: Optional[CapabilityTester] = None,
        cancel: Optional[CancellationToken] = None,
        device_factory: Optional[Callable[[AppConfig], Any]] = None,
    ) -> None:
        self._config = config
        self._tester = tester
        self._cancel = cancel or CancellationToken()
        self._device_factory = device_factory or default_device_factory
        self.results = ConformResults()
        self.recorder = FindingRecorder(
            self.results,
            report_good_timings=config.tests.report_good_timings,
            report_bad_timings=config.tests.report_bad_timings,
        )
        self.report_path: Optional[Path] = None
        self.summary_path: Optional[Path] = None

    @property
    def cancel(self) -> CancellationToken:
        return self._cancel

    @property
    def tester(self) -> CapabilityTester:
        if self._tester is None:
            self._tester = create_tester(self._config.device.capability)
        return self._tester

    # Public API

    def run(self) -> int:
        """Run every stage and return the process exit code."""

        unhandled: Optional[BaseException] = None
        try:
            self._run_stages()
        except Exception as exc:
            unhandled = exc
            logger.exception("Unhandled fault during the conformance run")
        return self._finalize(unhandled)

    def run_setup(self) -> RaceResult:
        """Open the device's setup dialog, abandoning it if the run is cancelled."""

        tester = self.tester
        device = tester.create_device(self._config, self._device_factory)
        try:
            setup = getattr(device, "setup_dialog", None)
            if not callable(setup):
                raise RuntimeError("The device does not provide a setup dialog")
            return race_with_cancellation(lambda abort: setup(), self._cancel, name="setup-dialog")
        finally:
            self._dispose(tester, device)

    # Stages

    def _stopped(self, stage: str) -> bool:
        if self._cancel.cancelled:
            logger.info("Skipping %s because the run was cancelled", stage)
            return True
        return False

    def _run_stages(self) -> None:
        config = self._config
        recorder = self.recorder

        if self._stopped("Initialise"):
            return
        tester = self.tester
        logger.info("Starting %s conformance run", tester.capability)

        with ExitStack() as stack:
            ctx = self._create_device(stack, tester)
            if ctx is not None:
                self._run_connected(tester, ctx)

        if self._stopped("CheckConfiguration"):
            return
        check_configuration(TestContext(None, recorder, config.tests, self._cancel))

    def _create_device(self, stack: ExitStack, tester: CapabilityTester) -> Optional[TestContext]:
        recorder = self.recorder
        if self._stopped("CreateDevice"):
            return None
        try:
            device = tester.create_device(self._config, self._device_factory)
        except Exception as exc:
            recorder.issue("Initialise", f"Unable to access/create the device: {exc}")
            return None
        stack.callback(self._dispose, tester, device)

        if not wait_for(self._config.tests.settle_delay_s, self._cancel):
            return None
        try:
            version = tester.validate_interface(device)
        except Exception as exc:
            recorder.issue("Initialise", f"Unable to access/create the device: {exc}")
            return None
        logger.info("Device interface version %d", version)
        return TestContext(device, recorder, self._config.tests, self._cancel, version)

    def _run_connected(self, tester: CapabilityTester, ctx: TestContext) -> None:
        state = tester.new_state()
        if tester.flags.has_pre_connect_check and not self._stage("PreConnectChecks", tester.pre_connect_checks, ctx, state):
            return
        if self._stopped("Connect"):
            return
        try:
            connect_device(ctx)
        except Exception as exc:
            self.recorder.issue("Connected", f"Unable to connect to the device: {exc}")
            return

        try:
            if self._run_cycles(tester, ctx, state) and tester.flags.has_post_run_check:
                self._stage("PostRunCheck", tester.post_run_check, ctx, state)
        finally:
            self._disconnect(ctx)

    def _run_cycles(self, tester: CapabilityTester, ctx: TestContext, state: Any) -> bool:
        tests = self._config.tests
        flags = tester.flags
        stages: List[Tuple[str, Stage, bool]] = [
            ("CheckCommonMethods", lambda c, _s: check_common_members(c), tests.test_properties),
            ("ReadCanProperties", tester.read_can_properties, flags.has_can_properties),
            ("PreRunCheck", tester.pre_run_check, flags.has_pre_run_check),
            ("CheckProperties", tester.check_properties, tests.test_properties and flags.has_properties),
            ("CheckMethods", tester.check_methods, tests.test_methods and flags.has_methods),
            ("CheckPerformance", tester.check_performance, tests.test_performance and flags.has_performance_check),
        ]
        for cycle in range(1, tests.cycles + 1):
            if tests.cycles > 1:
                logger.info("Test cycle %d of %d", cycle, tests.cycles)
            for name, stage, enabled in stages:
                if enabled and not self._stage(name, stage, ctx, state):
                    return False
        return True

    def _stage(self, name: str, stage: Stage, ctx: TestContext, state: Any) -> bool:
        """Run one stage; False means the remaining inner stages must be skipped."""

        if self._stopped(name):
            return False
        logger.info("%s", name)
        try:
            stage(ctx, state)
        except Exception as exc:
            self.recorder.error(name, f"Unexpected error in {name}: {exc}")
            logger.debug("%s failed", name, exc_info=True)
            return False
        return not self._cancel.cancelled

    def _disconnect(self, ctx: TestContext) -> None:
        try:
            disconnect_device(ctx)
        except Exception as exc:
            self.recorder.issue("Connected", f"Unable to disconnect from the device: {exc}")

    def _dispose(self, tester: CapabilityTester, device: Any) -> None:
        try:
            tester.dispose(device)
        except Exception as exc:
            self.recorder.issue("Dispose", f"Unable to release the device: {exc}")
            logger.debug("Dispose failed", exc_info=True)

    # Reporting

    def _finalize(self, unhandled: Optional[BaseException]) -> int:
        config = self._config
        if self._cancel.cancelled:
            self.recorder.issue(STOP_KEY, INCOMPLETE_MESSAGE)

        for line in summary_lines(self.results, config.tests):
            logger.info("%s", line)

        exit_code = self.results.total
        destination = default_report_path(config.report)
        try:
            self.report_path = write_results(self.results, destination)
            logger.info("Results written to %s", self.report_path)
        except OSError as exc:
            logger.error("Unable to write the results file %s: %s", destination, exc)
            exit_code = EXIT_REPORT_WRITE_FAILED

        template = config.report.summary_template
        if template is not None:
            output = config.report.summary_path or destination.with_suffix(".summary.txt")
            context = summary_context(
                self.results,
                capability=config.device.capability,
                report_path=self.report_path,
            )
            try:
                self.summary_path = write_summary(template, context, output)
                logger.info("Summary written to %s", self.summary_path)
            except Exception as exc:
                logger.error("Unable to render the summary template %s: %s", template, exc)
                exit_code = EXIT_REPORT_WRITE_FAILED

        if unhandled is not None:
            return EXIT_UNHANDLED_FAULT
        return exit_code


def run_session(
    config: AppConfig,
    *,
    capability: Optional[str] = None,
    cancel: Optional[CancellationToken] = None,
    device_factory: Optional[Callable[[AppConfig], Any]] = None,
) -> Tuple[ConformResults, int]:
    """Run a complete conformance session and return its results and exit code."""

    tester = create_tester(capability) if capability else None
    session = TestSession(config, tester=tester, cancel=cancel, device_factory=device_factory)
    exit_code = session.run()
    return session.results, exit_code
