from __future__ import annotations

from datetime import datetime, timedelta, timezone

import stripe

from conftest import USER_ID, sample_subscription
from portfolio_billing.services.subscription_store import SubscriptionStore


def _event(event_type, obj):
    return {'id': 'evt_1', 'type': event_type, 'data': {'object': obj}}


def _post(client, body=b'{}'):
    return client.post('/stripe-webhook', content=body, headers={'stripe-signature': 't=1,v1=abc'})


def test_bad_signature_is_rejected(client, stripe_client, db):
    stripe_client.construct_event.side_effect = stripe.SignatureVerificationError(
        'No signatures found matching the expected signature', 't=1,v1=abc'
    )

    response = _post(client)

    assert response.status_code == 400
    assert response.json()['error'].startswith('Webhook Error:')
    assert SubscriptionStore(db).get_by_user_id(USER_ID) is None


def test_signature_verified_with_webhook_secret(client, stripe_client):
    stripe_client.construct_event.return_value = _event('customer.created', {'id': 'cus_1'})

    response = _post(client, b'{"id": "evt_1"}')

    assert response.status_code == 200
    assert response.json() == {'received': True}
    stripe_client.construct_event.assert_called_once_with(b'{"id": "evt_1"}', 't=1,v1=abc', 'whsec_test')


def test_subscription_created_writes_local_record(client, stripe_client, db):
    stripe_client.construct_event.return_value = _event(
        'customer.subscription.created',
        sample_subscription(
            status='trialing',
            trial_end=1720000000,
            metadata={'userId': USER_ID, 'billingInterval': 'year', 'couponCode': 'SAVE50'},
        ),
    )

    assert _post(client).status_code == 200

    record = SubscriptionStore(db).get_by_user_id(USER_ID)
    assert record.plan_type == 'premium'
    assert record.status == 'trialing'
    assert record.is_trialing is True
    assert record.billing_interval == 'year'
    assert record.coupon_code == 'SAVE50'
    assert record.stripe_customer_id == 'cus_123'
    assert record.stripe_subscription_id == 'sub_123'
    assert record.trial_ends_at.replace(tzinfo=timezone.utc) == datetime.fromtimestamp(
        1720000000, tz=timezone.utc
    )


def test_subscription_without_user_metadata_is_ignored(client, stripe_client, db):
    stripe_client.construct_event.return_value = _event(
        'customer.subscription.created', sample_subscription(metadata={})
    )

    assert _post(client).status_code == 200
    assert SubscriptionStore(db).get_by_customer_id('cus_123') is None


def test_subscription_updated_to_active_clears_grace_period(client, stripe_client, db):
    store = SubscriptionStore(db)
    store.upsert(
        USER_ID,
        plan_type='premium',
        status='past_due',
        grace_period_ends_at=datetime.now(timezone.utc) + timedelta(days=3),
    )
    stripe_client.construct_event.return_value = _event(
        'customer.subscription.updated', sample_subscription(cancel_at_period_end=True)
    )

    assert _post(client).status_code == 200

    record = store.get_by_user_id(USER_ID)
    db.refresh(record)
    assert record.status == 'active'
    assert record.cancel_at_period_end is True
    assert record.grace_period_ends_at is None


def test_subscription_deleted_marks_cancelled(client, stripe_client, db):
    stripe_client.construct_event.return_value = _event(
        'customer.subscription.deleted', sample_subscription(status='canceled')
    )

    assert _post(client).status_code == 200

    record = SubscriptionStore(db).get_by_user_id(USER_ID)
    assert record.status == 'cancelled'
    assert record.cancel_at_period_end is True


def test_payment_failed_starts_grace_period(client, stripe_client, db):
    stripe_client.subscriptions.retrieve.return_value = sample_subscription()
    stripe_client.construct_event.return_value = _event(
        'invoice.payment_failed', {'id': 'in_1', 'subscription': 'sub_123'}
    )

    before = datetime.now(timezone.utc)
    assert _post(client).status_code == 200

    record = SubscriptionStore(db).get_by_user_id(USER_ID)
    assert record.status == 'past_due'
    grace_end = record.grace_period_ends_at.replace(tzinfo=timezone.utc)
    assert grace_end >= before + timedelta(days=3)
    stripe_client.subscriptions.retrieve.assert_called_once_with('sub_123')


def test_payment_failed_reads_subscription_from_invoice_parent(client, stripe_client, db):
    stripe_client.subscriptions.retrieve.return_value = sample_subscription()
    stripe_client.construct_event.return_value = _event(
        'invoice.payment_failed',
        {'id': 'in_3', 'parent': {'subscription_details': {'subscription': 'sub_123'}}},
    )

    assert _post(client).status_code == 200

    stripe_client.subscriptions.retrieve.assert_called_once_with('sub_123')
    assert SubscriptionStore(db).get_by_user_id(USER_ID).status == 'past_due'


def test_payment_succeeded_restores_active_and_clears_grace_period(client, stripe_client, db):
    store = SubscriptionStore(db)
    store.upsert(
        USER_ID,
        plan_type='premium',
        status='past_due',
        grace_period_ends_at=datetime.now(timezone.utc) + timedelta(days=3),
    )
    stripe_client.subscriptions.retrieve.return_value = sample_subscription()
    stripe_client.construct_event.return_value = _event(
        'invoice.payment_succeeded', {'id': 'in_2', 'subscription': 'sub_123'}
    )

    assert _post(client).status_code == 200

    record = store.get_by_user_id(USER_ID)
    db.refresh(record)
    assert record.status == 'active'
    assert record.grace_period_ends_at is None
    stripe_client.subscriptions.retrieve.assert_called_once_with('sub_123')


def test_setup_intent_sets_default_payment_method(client, stripe_client):
    stripe_client.construct_event.return_value = _event(
        'setup_intent.succeeded',
        {
            'id': 'seti_1',
            'payment_method': 'pm_1',
            'metadata': {'subscription_id': 'sub_123', 'user_id': USER_ID},
        },
    )

    assert _post(client).status_code == 200
    stripe_client.subscriptions.update.assert_called_once_with(
        'sub_123', params={'default_payment_method': 'pm_1'}
    )


def test_handler_failure_returns_500(client, stripe_client):
    stripe_client.subscriptions.retrieve.side_effect = stripe.APIConnectionError('network down')
    stripe_client.construct_event.return_value = _event(
        'invoice.payment_succeeded', {'id': 'in_1', 'subscription': 'sub_123'}
    )

    response = _post(client)

    assert response.status_code == 500
    assert response.json() == {'error': 'Webhook handler failed'}


def test_missing_signature_header(client, stripe_client):
    response = client.post('/stripe-webhook', content=b'{}')

    assert response.status_code == 400
    assert response.json() == {'error': 'Webhook Error: Missing stripe-signature header'}
    stripe_client.construct_event.assert_not_called()
