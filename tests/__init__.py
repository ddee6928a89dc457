"""Test package for logwitness.

Test Organisation
-----------------
- Unit tests (test_*.py): the metadata codec, severity tables, name
  inference, records, interceptors, queries and the capture lifecycle.
- BDD tests (features/): Gherkin feature files with step definitions in
  steps/.
- Shared fixtures (conftest.py): automatic reset of the stdlib loggers used
  by tests and of the claimed test ids.
- Shared helpers (helpers.py): ``make_record`` for building records directly.

Running Tests
-------------
Run all tests::

    pytest tests/

Run the concurrency tests only::

    pytest -m concurrency
"""
