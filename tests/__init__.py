"""
Flow engine tests

    conftest.py                 in-memory engine, fixed clock, recording fakes
    unit/test_engine/           evaluator, processors, engine, sweep, validator
    unit/test_services/         workflow service, notifications, templates
    unit/test_utils/            time helpers
    integration/test_api/       HTTP routes through TestClient

No MongoDB is needed: every test runs against the in-memory stores.

    pytest
    pytest tests/unit/test_engine -k sweep
"""
