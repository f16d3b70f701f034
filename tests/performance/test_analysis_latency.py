#!/usr/bin/env python3
"""
Analysis Latency Test Suite
===========================

Full re-analysis runs on every edit, so a large document must analyse
well inside an interactive budget.

Features:
- Whole-document analysis time for generated sources
- Completion time against an analysed document
- Latency of heavily malformed input
"""

import pytest
import time
import sys
import os
from dataclasses import dataclass

# Add the project root to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from pseudoscript import AnalysisEngine


@dataclass
class LatencyTarget:
    """Latency target for a generated document"""
    functions: int
    max_time_ms: float


FUNCTION_TEMPLATES = [
    (
        "function add_{n}(a, b)\n"
        "    var total = a + b\n"
        "    if total is greater than 10 then\n"
        "        print \"big\"\n"
        "    else\n"
        "        print total\n"
        "    end if\n"
        "    return total\n"
        "end function\n"
    ),
    (
        "def loop_{n}(items) {{\n"
        "    for each item in items {{\n"
        "        while item > 0 {{\n"
        "            item = item - 1\n"
        "        }}\n"
        "    }}\n"
        "}}\n"
    ),
    (
        "procedure count_{n}():\n"
        "    for i = 1 to 10\n"
        "        output i * 2\n"
        "    next i\n"
        "    repeat\n"
        "        input guess\n"
        "    until guess == 7\n"
    ),
]


def generate_document(functions: int) -> str:
    return "\n".join(FUNCTION_TEMPLATES[n % len(FUNCTION_TEMPLATES)].format(n=n) for n in range(functions))


class TestAnalysisLatency:
    """
    Latency targets for whole-document re-analysis.
    """

    LATENCY_TARGETS = [
        LatencyTarget(30, 250.0),     # ~250 lines
        LatencyTarget(250, 2000.0),   # ~2000 lines
    ]

    @classmethod
    def setup_class(cls):
        """Set up a shared engine"""
        cls.engine = AnalysisEngine()

    @pytest.mark.parametrize("target", LATENCY_TARGETS, ids=lambda t: f"{t.functions}fn")
    def test_analysis_time(self, target):
        """Whole-document analysis stays within target"""
        source = generate_document(target.functions)
        self.engine.analyze(source)  # warm up

        start = time.perf_counter()
        result = self.engine.analyze(source)
        elapsed_ms = (time.perf_counter() - start) * 1000

        print(f"\n{target.functions} functions, {source.count(chr(10))} lines: {elapsed_ms:.1f}ms")
        assert not result.has_errors
        assert elapsed_ms < target.max_time_ms

    def test_completion_time(self):
        """Completion against a large analysed document is fast"""
        source = generate_document(250) + "\nto"
        result = self.engine.analyze(source)
        end = result.line_index.location(len(source))

        start = time.perf_counter()
        items = self.engine.complete(result, end.line, end.column)
        elapsed_ms = (time.perf_counter() - start) * 1000

        assert items
        assert elapsed_ms < 250.0

    def test_malformed_input_time(self):
        """Recovery does not degrade on garbage input"""
        source = "if if ( [ { end until \"x\n" * 500

        start = time.perf_counter()
        result = self.engine.analyze(source)
        elapsed_ms = (time.perf_counter() - start) * 1000

        assert result.tree.program.end == len(source)
        assert elapsed_ms < 2000.0
