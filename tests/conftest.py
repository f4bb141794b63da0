import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.database.connection import Base
from app.models import discount_rule, product, rule_usage  # noqa: F401  (register tables)
from app.services.discount_engine.conditions import ConditionEvaluator
from app.services.discount_engine.exclusions import ExclusionRegistry
from tests.factories import InMemoryRuleRepository

TEST_DB_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def create_test_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    connection = engine.connect()
    trans = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        trans.rollback()
        connection.close()


@pytest.fixture()
def settings():
    return Settings(
        DISCOUNTS_ENABLED=True,
        APPLY_TO_SALE_PRODUCTS=False,
        CURRENCY_DECIMALS=2,
        SHOW_CART_DISCOUNT_LABEL=True,
        CART_DISCOUNT_LABEL="Discount",
    )


@pytest.fixture()
def repository():
    return InMemoryRuleRepository()


@pytest.fixture()
def exclusions(repository):
    return ExclusionRegistry(repository)


@pytest.fixture()
def conditions():
    return ConditionEvaluator()
