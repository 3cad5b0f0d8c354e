import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.pop('STRIPE_SECRET_KEY', None)
os.environ.pop('STRIPE_WEBHOOK_SECRET', None)

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from portfolio_billing.api.dependencies import get_provider_factory  # noqa: E402
from portfolio_billing.config import Settings, get_settings  # noqa: E402
from portfolio_billing.database import get_db, get_engine  # noqa: E402
from portfolio_billing.integrations.stripe_billing import StripeBillingProvider  # noqa: E402
from portfolio_billing.main import app  # noqa: E402
from portfolio_billing.models import Base  # noqa: E402

USER_ID = '6f1c2a8e-2d7b-4a55-9c1e-0b8d3f4e5a61'


@pytest.fixture
def make_settings():
    def factory(**overrides):
        values = {
            'APP_ENV': 'test',
            'DATABASE_URL': 'sqlite://',
            'STRIPE_SECRET_KEY': 'sk_test_51abcdefghijkl',
            'STRIPE_WEBHOOK_SECRET': 'whsec_test',
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return factory


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def stripe_client():
    return MagicMock(name='StripeClient')


@pytest.fixture
def provider(stripe_client):
    return StripeBillingProvider(stripe_client)


@pytest.fixture
def provider_factory(provider):
    return MagicMock(name='provider_factory', return_value=provider)


@pytest.fixture
def client(settings, provider_factory, db, engine):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_provider_factory] = lambda: provider_factory
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_engine] = lambda: engine
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def stripe_list(*items):
    return {'object': 'list', 'data': list(items), 'has_more': False}


def sample_subscription(**overrides):
    subscription = {
        'id': 'sub_123',
        'object': 'subscription',
        'customer': 'cus_123',
        'status': 'active',
        'current_period_start': 1717200000,
        'current_period_end': 1719792000,
        'cancel_at_period_end': False,
        'metadata': {'userId': USER_ID, 'billingInterval': 'month'},
        'items': stripe_list(
            {
                'id': 'si_1',
                'price': {
                    'id': 'price_monthly',
                    'unit_amount': 2900,
                    'currency': 'usd',
                    'recurring': {'interval': 'month'},
                },
            }
        ),
    }
    subscription.update(overrides)
    return subscription
