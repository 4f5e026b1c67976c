"""
PracticeFlow Tests

Unit tests mock every vendor (SES, SNS, Stripe, Claude), Redis and the
database session; they need no running services.

Running Tests:
    # Unit tests
    pytest tests/unit -v

    # Smoke tests against a running server
    E2E_BASE_URL=http://localhost:8000 pytest tests/e2e/smoke_test_e2e.py -v

Test Coverage:
    - Quiet hours, channel selection and template rendering
    - Delivery dispatch and per-attempt logging
    - Plans, addons and feature access decisions
    - Signup compensation and portal registration
    - Payment links, clinical notes, messaging and typing flags
    - HTTP middleware and error bodies
"""
