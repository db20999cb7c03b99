"""
Shared fixtures for the tax gateway tests.
"""

from decimal import Decimal

import pytest

from backend.core.config import AccurateConfig, AppConfig, BatchConfig, ServiceConfig, Settings

ACCURATE_HOST = "https://accurate.test"
SESSION_ID = "session-123"


def build_settings(**overrides) -> Settings:
    """Settings for tests: no real delays, configurable upstream"""
    accurate = {
        "accurate_host": ACCURATE_HOST,
        "accurate_session_id": SESSION_ID,
        "accurate_timeout_seconds": 5.0,
        "accurate_retry_attempts": 3,
        "accurate_retry_delay_seconds": 0,
    }
    batch = {
        "detail_batch_size": 5,
        "detail_batch_pause_seconds": 0,
        "statutory_tax_rate": Decimal("0.10"),
    }
    for key, value in overrides.items():
        if key in accurate:
            accurate[key] = value
        elif key in batch or key in BatchConfig.model_fields:
            batch[key] = value
        else:
            raise KeyError(key)

    return Settings(
        accurate=AccurateConfig(**accurate),
        batch=BatchConfig(**batch),
        service=ServiceConfig(),
        app=AppConfig(app_env="testing"),
    )


@pytest.fixture
def settings() -> Settings:
    return build_settings()


@pytest.fixture
def make_settings():
    """Factory fixture for settings with overrides"""
    return build_settings
