"""Settings — tests for economics validation and database URL normalisation."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from fountain.config import BASE_UNITS_PER_UNIT, Settings


def test_defaults_match_protocol_economics():
    settings = Settings()
    assert settings.issuance_price == BASE_UNITS_PER_UNIT
    assert settings.max_quota == 1000
    assert settings.refund_fraction == 0.8
    assert settings.fee_fraction == 0.2
    assert settings.credential_removal_mode == "burn"


def test_postgres_url_gets_asyncpg_driver():
    settings = Settings(database_url="postgresql://u:p@host:5432/db")
    assert settings.database_url == "postgresql+asyncpg://u:p@host:5432/db"


def test_fractions_over_one_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(refund_fraction=0.9, fee_fraction=0.2)


def test_zero_quota_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(max_quota=0)


def test_unknown_removal_mode_rejected():
    with pytest.raises(PydanticValidationError):
        Settings(credential_removal_mode="shred")
