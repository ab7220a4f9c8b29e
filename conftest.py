import pytest


@pytest.fixture(autouse=True)
def _disable_security_redirects(settings):
    # Prevent SecurityMiddleware from forcing https://testserver/...
    settings.SECURE_SSL_REDIRECT = False

    # Secure cookies break session auth over the plain-http test client
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0


@pytest.fixture(autouse=True)
def _isolated_throttle_cache():
    # public verify/track endpoints are rate limited per client address
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()
