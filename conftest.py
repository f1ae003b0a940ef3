import os
import sys
from decimal import Decimal

import pytest
import django

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'lead_broker.settings')


def pytest_configure(config):
    """Configure Django settings for pytest."""
    from django.conf import settings

    # Only configure if not already configured
    if not settings.configured:
        settings.configure(
            DEBUG=True,
            DATABASES={
                'default': {
                    'ENGINE': 'django.db.backends.sqlite3',
                    'NAME': ':memory:',
                }
            },
            CACHES={
                'default': {
                    'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
                }
            },
            INSTALLED_APPS=[
                'django.contrib.contenttypes',
                'django.contrib.auth',
                'django.contrib.sessions',
                'django.contrib.messages',
                'django.contrib.admin',
                'rest_framework',
                'pipeline.apps.PipelineConfig',
            ],
            ROOT_URLCONF='pipeline.urls',
            SECRET_KEY='test-secret-key',
            USE_TZ=True,
            DEFAULT_AUTO_FIELD='django.db.models.BigAutoField',
            REST_FRAMEWORK={
                'DEFAULT_RENDERER_CLASSES': ['rest_framework.renderers.JSONRenderer'],
                'DEFAULT_PARSER_CLASSES': ['rest_framework.parsers.JSONParser'],
                'EXCEPTION_HANDLER': 'pipeline.exceptions.api_exception_handler',
            },
            # Celery settings for tests
            CELERY_BROKER_URL='memory://',
            CELERY_RESULT_BACKEND='cache+memory://',
            CELERY_TASK_ALWAYS_EAGER=True,
            CELERY_TASK_EAGER_PROPAGATES=True,
            # Signing and forwarding settings
            HMAC_ALGO='sha256',
            SIGNATURE_TOLERANCE_SECONDS=300,
            REPLAY_TTL_SECONDS=300,
            CALLBACK_REQUIRE_SIGNATURE=False,
            FORWARD_TIMEOUT_SECONDS=30.0,
            FORWARD_MAX_ATTEMPTS=6,
            FORWARD_BACKOFF_BASE_SECONDS=1,
            FORWARD_LOCK_TIMEOUT_SECONDS=60,
            FORWARD_LOCK_RETRY_SECONDS=5,
            FORWARD_USER_AGENT='LeadBroker/1.0',
            RATE_LIMIT_CALLBACK=500,
            RATE_LIMIT_WINDOW_SECONDS=60,
        )

        # Bind shared tasks to the project Celery app (eager in tests)
        import lead_broker  # noqa: F401

        django.setup()
    else:
        # Override database settings for tests
        settings.DATABASES = {
            'default': {
                'ENGINE': 'django.db.backends.sqlite3',
                'NAME': ':memory:',
            }
        }


@pytest.fixture(autouse=True)
def clear_cache():
    """Replay keys, rate counters and forward locks must not leak between tests."""
    from django.core.cache import cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def affiliate(db):
    from pipeline.models import Affiliate
    return Affiliate.objects.create(name='Affiliate A', email='a@affiliate.test')


@pytest.fixture
def advertiser(db):
    from pipeline.models import Advertiser
    return Advertiser.objects.create(
        name='Advertiser X',
        platform='custom',
        endpoint_url='https://advertiser-x.test/leads',
        endpoint_secret='s1',
    )


@pytest.fixture
def offer(advertiser):
    from pipeline.models import Offer
    return Offer.objects.create(advertiser=advertiser, name='Offer O', payout_amount=Decimal('25.00'))


@pytest.fixture
def mapping(affiliate, offer, advertiser):
    from pipeline.models import Mapping
    return Mapping.objects.create(affiliate=affiliate, offer=offer, advertiser=advertiser)


@pytest.fixture
def tracking_payload():
    """Return a raw tracking payload as an affiliate would post it."""
    return {
        'first_name': 'Rainer',
        'last_name': 'Simossek',
        'email': 'rainer.simossek@t-online.de',
        'phone': '0160 8912308',
        'country': 'DE',
        'address': {'zip': '53859', 'city': 'Niederkassel'},
        'utm_source': 'newsletter',
    }


@pytest.fixture
def pending_lead(affiliate, offer, tracking_payload):
    from pipeline.models import Lead
    return Lead.objects.create(
        affiliate=affiliate,
        offer=offer,
        raw_payload=tracking_payload,
        email=tracking_payload['email'],
        phone=tracking_payload['phone'],
        first_name=tracking_payload['first_name'],
        last_name=tracking_payload['last_name'],
        country=tracking_payload['country'],
    )


@pytest.fixture
def forwarded_lead(pending_lead, advertiser):
    from pipeline.models import Lead
    pending_lead.status = Lead.Status.FORWARDED
    pending_lead.advertiser = advertiser
    pending_lead.save()
    return pending_lead
