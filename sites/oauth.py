"""
Shopify OAuth (authorization code grant).

Flow: the dashboard sends the owner to build_authorize_url(); Shopify redirects
back to the callback with code, shop and our state blob; exchange_code() turns
the code into a permanent access token.
"""
import base64
import binascii
import json
import logging
import re
from typing import Any, Dict
from urllib.parse import urlencode

import requests
from django.core.exceptions import ImproperlyConfigured

from .conf import StoreConfig

logger = logging.getLogger(__name__)

SHOP_SUFFIX = '.myshopify.com'
REQUEST_TIMEOUT = 30

_HOSTNAME_RE = re.compile(r'^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+$')


class InvalidShopDomain(ValueError):
    pass


class InvalidOAuthState(ValueError):
    pass


class OAuthExchangeError(Exception):
    """Shopify refused to exchange the authorization code."""

    def __init__(self, status_code, body):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed to exchange code for token: {status_code} - {body}")


def normalize_shop_domain(shop: str) -> str:
    """
    Normalize a shop identifier to its canonical myshopify domain.

    "mystore", "mystore.myshopify.com" and "https://mystore.myshopify.com/"
    all become "mystore.myshopify.com". Custom domains keep their own host.
    """
    domain = (shop or '').strip().lower()
    domain = re.sub(r'^https?://', '', domain).rstrip('/')
    if domain.endswith(SHOP_SUFFIX):
        domain = domain[:-len(SHOP_SUFFIX)]
    if domain and '.' not in domain:
        domain = f"{domain}{SHOP_SUFFIX}"
    if not _HOSTNAME_RE.match(domain):
        raise InvalidShopDomain(f"Invalid shop domain: {shop!r}")
    return domain


def encode_state(user_id, shop: str) -> str:
    """Opaque state blob binding the OAuth round trip to one principal and shop."""
    payload = json.dumps({'user_id': user_id, 'shop': shop})
    return base64.b64encode(payload.encode('utf-8')).decode('ascii')


def decode_state(blob: str) -> Dict[str, Any]:
    try:
        state = json.loads(base64.b64decode(blob, validate=True).decode('utf-8'))
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        raise InvalidOAuthState('Invalid state parameter') from exc
    if not isinstance(state, dict) or 'user_id' not in state:
        raise InvalidOAuthState('Invalid state parameter')
    return state


class ShopifyOAuth:

    def __init__(self, config: StoreConfig, session: requests.Session = None):
        self.config = config
        self.session = session or requests.Session()

    def _require_credentials(self, need_secret=False):
        if not self.config.shopify_api_key:
            raise ImproperlyConfigured('SHOPIFY_API_KEY is not set')
        if need_secret and not self.config.shopify_api_secret:
            raise ImproperlyConfigured('Shopify API credentials are not set')

    def build_authorize_url(self, shop: str, state: str) -> str:
        self._require_credentials()
        params = {
            'client_id': self.config.shopify_api_key,
            'scope': self.config.shopify_scopes,
            'redirect_uri': self.config.redirect_uri,
            'state': state,
        }
        auth_url = f"https://{shop}/admin/oauth/authorize?{urlencode(params)}"
        logger.info("Built Shopify authorize URL for %s (redirect_uri=%s)", shop, self.config.redirect_uri)
        return auth_url

    def exchange_code(self, shop: str, code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code for an access token.

        Returns Shopify's JSON body: {"access_token": "...", "scope": "..."}
        """
        self._require_credentials(need_secret=True)
        try:
            response = self.session.post(
                f"https://{shop}/admin/oauth/access_token",
                json={
                    'client_id': self.config.shopify_api_key,
                    'client_secret': self.config.shopify_api_secret,
                    'code': code,
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error("Shopify token exchange request to %s failed: %s", shop, e)
            raise OAuthExchangeError(None, str(e)) from e
        if not response.ok:
            logger.error("Shopify token exchange failed for %s (HTTP %s)", shop, response.status_code)
            raise OAuthExchangeError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise OAuthExchangeError(response.status_code, 'Response was not valid JSON') from e
        if not isinstance(data, dict) or not data.get('access_token'):
            raise OAuthExchangeError(response.status_code, 'Response did not include an access_token')
        return data
