"""
Integration tests for the xactlock library.

These tests require an actual PostgreSQL instance provisioned through
testcontainers, and are skipped automatically if Docker or testcontainers
is not available.

Run integration tests:
    pytest tests/integration/ -v

Skip integration tests:
    pytest tests/ -v -m "not integration"
"""
