"""
Pytest fixtures for payout model, lock and task tests.

Payment method and payout state fixtures live in payouts/conftest.py.
"""

import pytest


# =============================================================================
# Mock Redis Fixture (for lock tests)
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """
    Mock Redis client for distributed lock tests.

    Returns a MagicMock configured so that every lock can be acquired
    and released.
    """
    mock_client = mocker.MagicMock()
    mock_client.set.return_value = True
    mock_client.register_script.return_value.return_value = 1

    mocker.patch(
        "payouts.locks.get_redis_connection",
        return_value=mock_client,
    )

    return mock_client
