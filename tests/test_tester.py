"""Tests for the test runner."""

import sys

import pytest

from turnwright.tools.tester import TestReport, Tester, format_report, parse_junit_xml

JUNIT = """<?xml version="1.0" encoding="utf-8"?>
<testsuites>
  <testsuite name="pytest" tests="4">
    <testcase classname="tests.test_math" name="test_add" time="0.001"/>
    <testcase classname="tests.test_math" name="test_sub" time="0.001">
      <failure message="assert 1 == 2">def test_sub(): assert 1 == 2</failure>
    </testcase>
    <testcase classname="tests.test_io" name="test_read" time="0.001">
      <error message="fixture 'db' not found"/>
    </testcase>
    <testcase classname="tests.test_io" name="test_slow" time="0.0">
      <skipped message="slow"/>
    </testcase>
  </testsuite>
</testsuites>
"""


def test_parse_junit_xml_counts():
    report = parse_junit_xml(JUNIT)

    assert report.num_passed == 1
    assert report.num_failed == 2
    assert report.num_total == 3
    assert [s.name for s in report.suites] == ["test_math", "test_io"]


def test_failures_keep_error_kind():
    failures = parse_junit_xml(JUNIT).failures()

    assert [(f.full_name, f.status) for f in failures] == [
        ("tests.test_math::test_sub", "failed"),
        ("tests.test_io::test_read", "error"),
    ]
    assert failures[0].failure_messages == ["assert 1 == 2\ndef test_sub(): assert 1 == 2"]


def test_format_report():
    text = format_report(parse_junit_xml(JUNIT))

    assert text.startswith("Test Results:\nStatus: FAILED\nPassed: 1, Failed: 2, Total: 3")
    assert "- tests.test_io::test_read [execution error]: fixture 'db' not found" in text


def test_format_empty_report():
    assert format_report(TestReport()) == "Test Results:\nStatus: PASSED\nPassed: 0, Failed: 0, Total: 0"


@pytest.mark.asyncio
async def test_run_tests_in_subprocess(temp_dir):
    (temp_dir / "test_sample.py").write_text(
        "def test_ok():\n    assert True\n\ndef test_bad():\n    assert 1 == 2\n"
    )

    report = await Tester(temp_dir, timeout=60, python=sys.executable).run_tests("test_sample.py")

    assert report.num_passed == 1
    assert report.num_failed == 1
    assert report.to_dict()["failures"][0]["full_name"].endswith("test_bad")


@pytest.mark.asyncio
async def test_no_tests_collected(temp_dir):
    report = await Tester(temp_dir, timeout=60).run_tests()

    assert report.num_total == 0
    assert report.success
