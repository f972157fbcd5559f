"""Test execution in a sandboxed pytest subprocess."""

import asyncio
import os
import resource
import sys
import tempfile
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from turnwright.constants import ALL_TESTS, DEFAULT_TEST_TIMEOUT
from turnwright.utils.paths import normalize_path

# pytest exit codes that mean the run itself broke
_RUN_ERRORS = {
    2: "Test run was interrupted",
    3: "Internal pytest error",
    4: "pytest usage error",
}
_NO_TESTS_COLLECTED = 5


class TestRunError(Exception):
    """Raised when the test runner could not produce a report."""

    __test__ = False


@dataclass
class AssertionResult:
    """Outcome of one test case."""

    __test__ = False

    full_name: str
    status: str  # passed, failed, error or skipped
    failure_messages: list[str] = field(default_factory=list)


@dataclass
class TestSuite:
    __test__ = False

    name: str
    assertions: list[AssertionResult] = field(default_factory=list)


@dataclass
class TestReport:
    """Aggregated results of a test run."""

    __test__ = False

    num_passed: int = 0
    num_failed: int = 0
    num_total: int = 0
    suites: list[TestSuite] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.num_failed == 0

    def failures(self) -> list[AssertionResult]:
        return [
            a for suite in self.suites for a in suite.assertions
            if a.status in ("failed", "error")
        ]

    def to_dict(self) -> dict:
        return {
            "num_passed": self.num_passed,
            "num_failed": self.num_failed,
            "num_total": self.num_total,
            "duration_ms": self.duration_ms,
            "failures": [
                {"full_name": a.full_name, "status": a.status, "messages": a.failure_messages}
                for a in self.failures()
            ],
        }


def parse_junit_xml(xml_text: str) -> TestReport:
    """Build a TestReport from pytest's JUnit XML output.

    Args:
        xml_text: Contents of the --junitxml file

    Returns:
        TestReport grouped by test module
    """
    root = ET.fromstring(xml_text)
    suites: dict[str, TestSuite] = {}
    report = TestReport()

    for case in root.iter("testcase"):
        classname = case.get("classname", "")
        name = case.get("name", "")
        module = classname.split(".")[-1] if classname else "tests"
        full_name = f"{classname}::{name}" if classname else name

        failure = case.find("failure")
        error = case.find("error")
        if failure is not None:
            status = "failed"
            messages = [_element_message(failure)]
        elif error is not None:
            status = "error"
            messages = [_element_message(error)]
        elif case.find("skipped") is not None:
            status = "skipped"
            messages = []
        else:
            status = "passed"
            messages = []

        suite = suites.setdefault(module, TestSuite(name=module))
        suite.assertions.append(AssertionResult(full_name, status, messages))

        if status == "skipped":
            continue
        report.num_total += 1
        if status == "passed":
            report.num_passed += 1
        else:
            report.num_failed += 1

    report.suites = list(suites.values())
    return report


def _element_message(element: ET.Element) -> str:
    message = element.get("message", "").strip()
    detail = (element.text or "").strip()
    if message and detail:
        return f"{message}\n{detail}"
    return message or detail or "(no message)"


class Tester:
    """Runs pytest for a project in a resource-limited subprocess."""

    def __init__(
        self,
        project_root: Path,
        timeout: int = DEFAULT_TEST_TIMEOUT,
        python: Optional[str] = None,
    ):
        """Initialize tester.

        Args:
            project_root: Project root directory (cwd for pytest)
            timeout: Timeout in seconds for one run
            python: Interpreter used to run pytest (defaults to the current one)
        """
        self.project_root = project_root
        self.timeout = timeout
        self.python = python or sys.executable

    async def run_tests(self, target: str = ALL_TESTS) -> TestReport:
        """Run one test file or the whole suite.

        Args:
            target: Project-relative test path, or the all-tests sentinel

        Returns:
            TestReport

        Raises:
            TestRunError: If pytest could not run or did not finish in time
        """
        with tempfile.TemporaryDirectory() as tmpdir:
            report_path = Path(tmpdir) / "report.xml"
            args = [self.python, "-m", "pytest", "-q", "-p", "no:cacheprovider",
                    f"--junitxml={report_path}"]
            if target != ALL_TESTS:
                args.append(normalize_path(target))

            start_time = time.time()
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(self.project_root),
                env=self._prepare_env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                preexec_fn=self._setup_sandbox,
            )

            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.communicate()
                raise TestRunError(f"Tests timed out after {self.timeout}s")
            except asyncio.CancelledError:
                process.kill()
                raise

            duration_ms = int((time.time() - start_time) * 1000)
            exit_code = process.returncode

            if exit_code == _NO_TESTS_COLLECTED:
                return TestReport(duration_ms=duration_ms)

            if exit_code in _RUN_ERRORS or not report_path.exists():
                reason = _RUN_ERRORS.get(exit_code, f"pytest exited with code {exit_code}")
                tail = (stderr or stdout).decode("utf-8", "replace").strip().splitlines()[-5:]
                raise TestRunError("\n".join([reason, *tail]))

            try:
                report = parse_junit_xml(report_path.read_text(encoding="utf-8"))
            except ET.ParseError as e:
                raise TestRunError(f"Cannot read test report: {e}") from e

        report.duration_ms = duration_ms
        return report

    def _prepare_env(self) -> dict[str, str]:
        """Prepare environment variables for sandboxed execution.

        Returns:
            Dictionary of environment variables
        """
        env = {}

        keep_vars = ["PATH", "HOME", "USER", "PYTHONPATH", "VIRTUAL_ENV", "LANG"]

        for var in keep_vars:
            if var in os.environ:
                env[var] = os.environ[var]

        return env

    def _setup_sandbox(self) -> None:
        """Setup resource limits for sandboxed execution.

        Called via preexec_fn before pytest starts.
        """
        try:
            # CPU time limit follows the run timeout
            resource.setrlimit(resource.RLIMIT_CPU, (self.timeout, self.timeout))

            # Memory limit (1GB soft, 2GB hard)
            resource.setrlimit(resource.RLIMIT_AS, (1024 * 1024 * 1024, 2 * 1024 * 1024 * 1024))

        except (ValueError, OSError):
            # Limits may already be lower on this system
            pass


def format_report(report: TestReport) -> str:
    """Render a report as the text fed back to the model.

    Args:
        report: Test report

    Returns:
        Multi-line summary with a failure list
    """
    lines = [
        "Test Results:",
        f"Status: {'PASSED' if report.success else 'FAILED'}",
        f"Passed: {report.num_passed}, Failed: {report.num_failed}, Total: {report.num_total}",
    ]

    failures = report.failures()
    if failures:
        lines.append("")
        lines.append("Failures:")
        for assertion in failures:
            label = " [execution error]" if assertion.status == "error" else ""
            lines.append(
                f"- {assertion.full_name}{label}: {' | '.join(assertion.failure_messages)}"
            )

    return "\n".join(lines)
