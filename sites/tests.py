"""
Tests for sites app - token encryption and the Shopify OAuth connection.
"""
from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from django.contrib.auth import get_user_model
from django.core.exceptions import ImproperlyConfigured
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from sites.crypto import DecryptionError, TokenCipher
from sites.oauth import (
    InvalidOAuthState,
    InvalidShopDomain,
    OAuthExchangeError,
    decode_state,
    encode_state,
    normalize_shop_domain,
)

KEY = '0123456789abcdef' * 4
OTHER_KEY = 'fedcba9876543210' * 4


@pytest.fixture(autouse=True)
def store_settings(settings):
    settings.SHOPIFY_API_KEY = 'test-api-key'
    settings.SHOPIFY_API_SECRET = 'test-api-secret'
    settings.SHOPIFY_ENCRYPTION_KEY = KEY
    settings.APP_URL = 'https://api.example.com'
    settings.FRONTEND_URL = 'https://app.example.com'
    return settings


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def create_user():
    def _create_user(email="test@example.com", password="testpass123"):
        return get_user_model().objects.create_user(
            email=email,
            username=email,
            password=password
        )
    return _create_user


@pytest.fixture
def authenticated_client(api_client, create_user):
    user = create_user()
    refresh = RefreshToken.for_user(user)
    api_client.credentials(HTTP_AUTHORIZATION=f'Bearer {str(refresh.access_token)}')
    return api_client, user


@pytest.fixture
def create_site():
    def _create_site(user, shop_domain="mystore.myshopify.com", token="shpat_test"):
        from sites.models import Site
        site = Site(user=user, name=shop_domain.split('.')[0], shop_domain=shop_domain,
                    store_url=f"https://{shop_domain}")
        site.connect(token, 'read_products,write_products')
        site.save()
        return site
    return _create_site


class TestTokenCipher:

    def test_round_trip(self):
        cipher = TokenCipher(KEY)
        blob = cipher.encrypt('shpat_abc123')
        assert blob != 'shpat_abc123'
        assert cipher.decrypt(blob) == 'shpat_abc123'

    def test_fresh_iv_per_call(self):
        cipher = TokenCipher(KEY)
        assert cipher.encrypt('same') != cipher.encrypt('same')

    def test_wrong_key_raises(self):
        blob = TokenCipher(KEY).encrypt('shpat_abc123')
        with pytest.raises(DecryptionError):
            TokenCipher(OTHER_KEY).decrypt(blob)

    @pytest.mark.parametrize('blob', ['', 'nocolon', 'zz:00', '00:' + '00' * 16, '00' * 16 + ':abc'])
    def test_malformed_blob_raises(self, blob):
        with pytest.raises(DecryptionError):
            TokenCipher(KEY).decrypt(blob)

    @pytest.mark.parametrize('key', ['', 'abc', 'g' * 64])
    def test_invalid_key(self, key):
        with pytest.raises(ImproperlyConfigured):
            TokenCipher(key)

    def test_missing_key_in_production(self, settings):
        from sites.crypto import get_token_cipher
        settings.ENVIRONMENT = 'production'
        settings.SHOPIFY_ENCRYPTION_KEY = ''
        with pytest.raises(ImproperlyConfigured):
            get_token_cipher()


class TestShopDomain:

    @pytest.mark.parametrize('shop', [
        'mystore',
        'mystore.myshopify.com',
        'https://mystore.myshopify.com/',
        '  MyStore.myshopify.com ',
    ])
    def test_normalization_converges(self, shop):
        assert normalize_shop_domain(shop) == 'mystore.myshopify.com'

    @pytest.mark.parametrize('shop', ['', '   ', 'my store', 'evil.com/path?x=1'])
    def test_invalid(self, shop):
        with pytest.raises(InvalidShopDomain):
            normalize_shop_domain(shop)

    def test_state_round_trip(self):
        state = decode_state(encode_state(7, 'mystore.myshopify.com'))
        assert state == {'user_id': 7, 'shop': 'mystore.myshopify.com'}

    def test_garbage_state(self):
        with pytest.raises(InvalidOAuthState):
            decode_state('not-base64!!')


@pytest.mark.django_db
class TestShopifyOAuth:

    def test_auth_requires_login(self, api_client):
        response = api_client.get('/api/v1/shopify/auth/', {'shop': 'mystore'})
        assert response.status_code == 401

    def test_auth_missing_shop(self, authenticated_client):
        client, user = authenticated_client
        response = client.get('/api/v1/shopify/auth/')
        assert response.status_code == 400

    def test_auth_redirects_to_shopify(self, authenticated_client):
        client, user = authenticated_client
        response = client.get('/api/v1/shopify/auth/', {'shop': 'mystore'})
        assert response.status_code == 302

        url = urlparse(response['Location'])
        params = parse_qs(url.query)
        assert url.netloc == 'mystore.myshopify.com'
        assert url.path == '/admin/oauth/authorize'
        assert params['client_id'] == ['test-api-key']
        assert params['redirect_uri'] == ['https://api.example.com/api/v1/shopify/callback/']
        assert decode_state(params['state'][0])['user_id'] == user.id

    def test_callback_missing_params(self, authenticated_client):
        client, user = authenticated_client
        response = client.get('/api/v1/shopify/callback/', {'shop': 'mystore.myshopify.com'})
        assert response.status_code == 400

    def test_callback_state_for_other_user(self, authenticated_client):
        client, user = authenticated_client
        response = client.get('/api/v1/shopify/callback/', {
            'code': 'abc',
            'shop': 'mystore.myshopify.com',
            'state': encode_state(user.id + 1, 'mystore.myshopify.com'),
        })
        assert response.status_code == 400

    @mock.patch('sites.views.ShopifyOAuth.exchange_code')
    def test_callback_creates_site(self, exchange_code, authenticated_client):
        from sites.models import Site
        client, user = authenticated_client
        exchange_code.return_value = {'access_token': 'shpat_new', 'scope': 'read_products'}

        response = client.get('/api/v1/shopify/callback/', {
            'code': 'abc',
            'shop': 'mystore.myshopify.com',
            'state': encode_state(user.id, 'mystore.myshopify.com'),
        })
        assert response.status_code == 302
        assert response['Location'] == 'https://app.example.com/dashboard?shopify=connected'

        site = Site.objects.get(user=user)
        assert site.name == 'mystore'
        assert site.store_url == 'https://mystore.myshopify.com'
        assert site.access_token != 'shpat_new'
        assert site.get_access_token() == 'shpat_new'
        assert site.is_active

    @mock.patch('sites.views.ShopifyOAuth.exchange_code')
    def test_callback_updates_existing_site(self, exchange_code, authenticated_client, create_site):
        from sites.models import Site
        client, user = authenticated_client
        site = create_site(user)
        site.disconnect()
        exchange_code.return_value = {'access_token': 'shpat_again', 'scope': 'read_products'}

        client.get('/api/v1/shopify/callback/', {
            'code': 'abc',
            'shop': 'mystore',
            'state': encode_state(user.id, 'mystore.myshopify.com'),
        })
        assert Site.objects.filter(user=user).count() == 1
        site.refresh_from_db()
        assert site.is_active
        assert site.get_access_token() == 'shpat_again'

    @mock.patch('sites.views.ShopifyOAuth.exchange_code')
    def test_callback_exchange_failure_redirects_with_error(self, exchange_code, authenticated_client):
        from sites.models import Site
        client, user = authenticated_client
        exchange_code.side_effect = OAuthExchangeError(400, 'invalid_request')

        response = client.get('/api/v1/shopify/callback/', {
            'code': 'abc',
            'shop': 'mystore.myshopify.com',
            'state': encode_state(user.id, 'mystore.myshopify.com'),
        })
        assert response.status_code == 302
        location = urlparse(response['Location'])
        params = parse_qs(location.query)
        assert params['shopify'] == ['error']
        assert 'invalid_request' in params['message'][0]
        assert not Site.objects.filter(user=user).exists()

    @mock.patch('requests.Session.post', side_effect=requests.ConnectionError('connection reset'))
    def test_callback_network_failure_redirects_with_error(self, post, authenticated_client):
        from sites.models import Site
        client, user = authenticated_client

        response = client.get('/api/v1/shopify/callback/', {
            'code': 'abc',
            'shop': 'mystore.myshopify.com',
            'state': encode_state(user.id, 'mystore.myshopify.com'),
        })
        assert response.status_code == 302
        params = parse_qs(urlparse(response['Location']).query)
        assert params['shopify'] == ['error']
        assert 'connection reset' in params['message'][0]
        assert not Site.objects.filter(user=user).exists()

    @mock.patch('requests.Session.post')
    def test_callback_non_json_reply_redirects_with_error(self, post, authenticated_client):
        client, user = authenticated_client
        post.return_value = mock.Mock(ok=True, status_code=200, text='<html>maintenance</html>')
        post.return_value.json.side_effect = ValueError('Expecting value')

        response = client.get('/api/v1/shopify/callback/', {
            'code': 'abc',
            'shop': 'mystore.myshopify.com',
            'state': encode_state(user.id, 'mystore.myshopify.com'),
        })
        assert response.status_code == 302
        assert parse_qs(urlparse(response['Location']).query)['shopify'] == ['error']

    def test_disconnect(self, authenticated_client, create_site):
        client, user = authenticated_client
        site = create_site(user)

        response = client.post('/api/v1/shopify/disconnect/')
        assert response.status_code == 200
        site.refresh_from_db()
        assert site.access_token is None
        assert site.is_active is False

    def test_disconnect_without_store(self, authenticated_client):
        client, user = authenticated_client
        response = client.post('/api/v1/shopify/disconnect/')
        assert response.status_code == 400

    def test_current_site_hides_token(self, authenticated_client, create_site):
        client, user = authenticated_client
        create_site(user)
        response = client.get('/api/v1/site/')
        assert response.status_code == 200
        assert response.data['shop_domain'] == 'mystore.myshopify.com'
        assert response.data['is_connected'] is True
        assert 'access_token' not in response.data
