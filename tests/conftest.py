import os
import sys


# Ensure 'src' and the test helpers are on sys.path for imports in tests
TESTS_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(TESTS_DIR, os.pardir))
SRC_DIR = os.path.join(PROJECT_ROOT, "src")
HELPERS_DIR = os.path.join(TESTS_DIR, "helpers")
for path in (SRC_DIR, HELPERS_DIR):
    if path not in sys.path:
        sys.path.insert(0, path)
