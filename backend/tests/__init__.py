"""
Test Suite

Tests for the incident workflow engine backend. Everything runs against
the in-memory repositories in fakes.py.

Structure:
    tests/
    ├── __init__.py
    ├── conftest.py         # World fixture: engine, services, seeded workflow
    ├── fakes.py            # In-memory repositories
    ├── unit/
    │   ├── test_engine/    # Transitions, assignment, actions, revisions
    │   ├── test_services/  # Incident and workflow services
    │   ├── test_scheduler/ # SLA monitor
    │   └── test_utils/     # Utility tests
    └── integration/
        └── test_api/       # API endpoint tests

To run tests:
    pytest backend/tests/
"""
