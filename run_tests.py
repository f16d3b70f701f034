#!/usr/bin/env python3
"""
Main test runner for pseudoscript.

Runs a smoke pass over the analysis pipeline, then the unit test suite.
"""

import sys
import os
import unittest

# Add the project root to the Python path
project_root = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, project_root)


SAMPLES = {
    "braces": """
    function add(a, b) {
        return a + b
    }
    """,
    "keywords": """
    PROCEDURE greet(name)
        IF name = "" THEN
            OUTPUT "Hello, stranger"
        ELSE
            OUTPUT "Hello, " & name
        ENDIF
    ENDPROCEDURE
    """,
    "indentation": """
def countdown(n):
    while n is greater than 0:
        print n
        n = n - 1
    """,
    "mixed": """
    for i = 1 to 10 {
        if i mod 2 == 0 then print i
    }
    repeat
        input guess
    until guess equals 7
    """,
}


def run_smoke_tests():
    """Analyse each sample and check that no errors are reported."""

    print("pseudoscript smoke tests")
    print("=" * 60)

    try:
        from pseudoscript import AnalysisEngine
    except ImportError as e:
        print(f"Failed to import pseudoscript: {e}")
        return False

    engine = AnalysisEngine()
    for name, code in SAMPLES.items():
        result = engine.analyze(code)
        style = result.scope.file_style.value
        print(f"  {name:12} {len(result.tokens):4} tokens  {len(result.tree):4} nodes  style {style}")
        if result.has_errors:
            for diagnostic in result.diagnostics:
                print(f"      {diagnostic}")
            return False

    # Error handling: an unterminated string is the one fatal condition
    result = engine.analyze('print "never closed\nprint 2')
    if [d.code for d in result.diagnostics] != ["L001"]:
        print(f"  Unexpected diagnostics: {[str(d) for d in result.diagnostics]}")
        return False
    print("  error handling: unterminated string reported as L001")

    items = engine.complete_text("fun", 0, 3)
    if not items or items[0].label != "function":
        print(f"  Unexpected completions: {[i.label for i in items]}")
        return False
    print(f"  completion: {', '.join(i.label for i in items[:5])}")
    print()
    return True


def run_unit_tests():
    loader = unittest.TestLoader()
    suite = loader.discover(os.path.join(project_root, "tests"), pattern="test_*.py")
    result = unittest.TextTestRunner(verbosity=1).run(suite)
    return result.wasSuccessful()


if __name__ == "__main__":
    success = run_smoke_tests() and run_unit_tests()
    sys.exit(0 if success else 1)
