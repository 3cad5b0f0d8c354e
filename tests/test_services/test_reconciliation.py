from __future__ import annotations

from datetime import datetime, timezone

import pytest

from conftest import USER_ID, sample_subscription, stripe_list
from portfolio_billing.services.reconciliation import reconcile_customer
from portfolio_billing.services.subscription_store import SubscriptionStore


def _stub(stripe_client, *subscriptions):
    stripe_client.subscriptions.list.return_value = stripe_list(*subscriptions)


@pytest.mark.asyncio
async def test_active_subscription_promotes_local_record(db, provider, stripe_client):
    store = SubscriptionStore(db)
    store.upsert(USER_ID, plan_type='basic', status='inactive')
    _stub(stripe_client, sample_subscription())

    applied = await reconcile_customer(provider, store, USER_ID, 'cus_123')

    record = store.get_by_user_id(USER_ID)
    assert applied['plan_type'] == 'premium'
    assert record.plan_type == 'premium'
    assert record.status == 'active'
    assert record.stripe_subscription_id == 'sub_123'
    assert record.stripe_customer_id == 'cus_123'
    assert record.billing_interval == 'month'


@pytest.mark.asyncio
async def test_lists_subscriptions_in_every_status(db, provider, stripe_client):
    _stub(stripe_client)

    await reconcile_customer(provider, SubscriptionStore(db), USER_ID, 'cus_123')

    stripe_client.subscriptions.list.assert_called_once_with(
        params={'customer': 'cus_123', 'status': 'all', 'limit': 10}
    )


@pytest.mark.asyncio
async def test_trialing_user_stays_premium(db, provider, stripe_client):
    store = SubscriptionStore(db)
    store.upsert(
        USER_ID,
        plan_type='premium',
        status='trialing',
        is_trialing=True,
        stripe_subscription_id='sub_123',
    )
    _stub(stripe_client, sample_subscription(status='trialing', trial_end=1720000000))

    await reconcile_customer(provider, store, USER_ID, 'cus_123')

    record = store.get_by_user_id(USER_ID)
    assert record.plan_type == 'premium'
    assert record.status == 'trialing'
    assert record.is_trialing is True
    assert record.stripe_subscription_id == 'sub_123'
    assert record.trial_ends_at.replace(tzinfo=timezone.utc) == datetime.fromtimestamp(
        1720000000, tz=timezone.utc
    )


@pytest.mark.asyncio
async def test_past_due_user_keeps_subscription(db, provider, stripe_client):
    store = SubscriptionStore(db)
    store.upsert(USER_ID, plan_type='premium', status='active', stripe_subscription_id='sub_123')
    _stub(stripe_client, sample_subscription(status='past_due'))

    await reconcile_customer(provider, store, USER_ID, 'cus_123')

    record = store.get_by_user_id(USER_ID)
    assert record.plan_type == 'premium'
    assert record.status == 'past_due'
    assert record.is_trialing is False
    assert record.stripe_subscription_id == 'sub_123'


@pytest.mark.asyncio
async def test_ended_subscriptions_are_skipped(db, provider, stripe_client):
    store = SubscriptionStore(db)
    _stub(
        stripe_client,
        sample_subscription(id='sub_old', status='canceled'),
        sample_subscription(id='sub_expired', status='incomplete_expired'),
        sample_subscription(id='sub_new', status='trialing'),
    )

    applied = await reconcile_customer(provider, store, USER_ID, 'cus_123')

    assert applied['stripe_subscription_id'] == 'sub_new'
    assert store.get_by_user_id(USER_ID).status == 'trialing'


@pytest.mark.asyncio
async def test_no_subscription_downgrades_to_basic(db, provider, stripe_client):
    store = SubscriptionStore(db)
    store.upsert(USER_ID, plan_type='premium', status='active', stripe_subscription_id='sub_old')
    _stub(stripe_client, sample_subscription(id='sub_old', status='canceled'))

    await reconcile_customer(provider, store, USER_ID, 'cus_123')

    record = store.get_by_user_id(USER_ID)
    assert record.plan_type == 'basic'
    assert record.status == 'inactive'
    assert record.stripe_subscription_id is None
