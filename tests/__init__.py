"""
Test Suite for Hive

Structure:
  tests/
    ├── unit/          # Component tests (fake notifier, fake clock)
    └── conftest.py    # Markers, test doubles, shared fixtures

Running tests:
  # All tests
  pytest

  # Specific test
  pytest tests/unit/test_scheduler.py
"""
