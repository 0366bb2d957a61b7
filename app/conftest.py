"""
App-level pytest configuration.

Tests are auto-marked unit or integration from their file name so that
`pytest -m unit` runs the fast, provider-free suite.
"""

import pytest


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_models.py, test_validators.py, test_fees.py, etc. → unit
    - test_registry.py, test_ledger.py, test_orchestrator.py, etc. → integration
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    unit_patterns = [
        "test_models.py",
        "test_validators.py",
        "test_details.py",
        "test_fees.py",
        "test_locks.py",
        "test_exceptions.py",
        "test_ach_adapter.py",
        "test_wallet_adapter.py",
        "test_wire_adapter.py",
        "test_router.py",
    ]

    for item in items:
        # Skip if test already has unit/integration marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
