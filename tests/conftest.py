from datetime import date

import pytest

from apps.accounts.models import Role
from apps.accounts.roles import Actor
from apps.bookings.config import WorkflowConfig
from apps.bookings.models import BookingRequest, BookingRequestStatus
from apps.bookings.naming import build_request_name, next_sequence_number
from apps.bookings.workflow import BookingWorkflow


def make_payload(**overrides):
    data = {
        'merchant_name': 'Café Luna',
        'contact_email': 'owner@cafeluna.test',
        'contact_phone': '+507 6000-0000',
        'additional_emails': ['manager@cafeluna.test'],
        'pricing_options': [
            {'title': '2x1 Brunch', 'price': '15.00', 'terms': 'Weekends only'},
            {'title': 'Brunch for four', 'price': '28.00', 'terms': ''},
        ],
        'start_date': '2026-03-02',
        'end_date': '2026-03-08',
        'description': 'Brunch promotion for March.',
        'category': 'Restaurantes',
    }
    data.update(overrides)
    return data


@pytest.fixture
def payload():
    return make_payload


@pytest.fixture
def config():
    return WorkflowConfig.from_settings()


@pytest.fixture
def workflow(config):
    return BookingWorkflow(config)


@pytest.fixture
def sales_actor():
    return Actor(id='101', role=Role.SALES, email='sales@osdeals.test', name='Sofía Sales')


@pytest.fixture
def other_sales_actor():
    return Actor(id='102', role=Role.SALES, email='other@osdeals.test', name='Otro Sales')


@pytest.fixture
def admin_actor():
    return Actor(id='1', role=Role.ADMIN, email='admin@osdeals.test', name='Ada Admin')


@pytest.fixture
def editor_actor():
    return Actor(id='201', role=Role.EDITOR, email='editor@osdeals.test', name='Eddie Editor')


@pytest.fixture
def make_request(db):
    """Insert a request directly in any state, bypassing the workflow."""
    def _make(merchant='Café Luna', status=BookingRequestStatus.SUBMITTED,
              start=date(2026, 3, 2), end=date(2026, 3, 8), category='Restaurantes',
              created_by='101', **fields):
        sequence = next_sequence_number(merchant)
        options = fields.pop('pricing_options', [{'title': 'Promo', 'price': '10.00', 'terms': ''}])
        return BookingRequest.objects.create(
            name=build_request_name(merchant, sequence, options[0]['title']),
            sequence_number=sequence,
            merchant_name=merchant,
            contact_email=fields.pop('contact_email', 'owner@merchant.test'),
            pricing_options=options,
            start_date=start,
            end_date=end,
            category=category,
            status=status,
            created_by=created_by,
            **fields,
        )
    return _make
