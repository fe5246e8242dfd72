"""
Views for connecting a Shopify store.

GET  /api/v1/shopify/auth/?shop=     - redirect to Shopify's consent screen
GET  /api/v1/shopify/callback/       - Shopify redirects here after consent
POST /api/v1/shopify/disconnect/     - forget the access token
GET  /api/v1/site/                   - current store summary
"""
import logging
from urllib.parse import urlencode

from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.http import HttpResponseRedirect
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .conf import get_store_config
from .models import Site
from .oauth import (
    InvalidOAuthState,
    InvalidShopDomain,
    OAuthExchangeError,
    ShopifyOAuth,
    decode_state,
    encode_state,
    normalize_shop_domain,
)
from .permissions import get_site_or_error
from .serializers import SiteSerializer

logger = logging.getLogger(__name__)


def _dashboard_redirect(**params):
    config = get_store_config()
    return HttpResponseRedirect(f"{config.dashboard_url}?{urlencode(params)}")


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def shopify_auth(request):
    """
    Start the OAuth flow.

    GET /api/v1/shopify/auth/?shop=mystore
    """
    shop = request.query_params.get('shop')
    if not shop:
        return Response({'error': 'Missing shop parameter'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        shop_domain = normalize_shop_domain(shop)
    except InvalidShopDomain as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    state = encode_state(request.user.id, shop_domain)
    try:
        auth_url = ShopifyOAuth(get_store_config()).build_authorize_url(shop_domain, state)
    except ImproperlyConfigured as e:
        logger.error("Shopify OAuth is not configured: %s", e)
        return Response(
            {'error': 'Shopify OAuth is not configured', 'message': str(e)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )
    return HttpResponseRedirect(auth_url)


@transaction.atomic
def _upsert_site(user, shop_domain, token_data):
    """Create or update the user's single store with a freshly exchanged token."""
    site = Site.objects.select_for_update().filter(user=user).first()
    if site is None:
        site = Site(user=user)
    site.name = shop_domain.replace('.myshopify.com', '')
    site.shop_domain = shop_domain
    site.store_url = f"https://{shop_domain}"
    site.connect(token_data['access_token'], token_data.get('scope', ''))
    site.save()
    return site


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def shopify_callback(request):
    """
    OAuth callback. Exchanges the code and stores the encrypted token.

    GET /api/v1/shopify/callback/?code=...&shop=...&state=...
    """
    code = request.query_params.get('code')
    shop = request.query_params.get('shop')
    state_blob = request.query_params.get('state')
    if not code or not shop or not state_blob:
        return Response({'error': 'Missing required parameters'}, status=status.HTTP_400_BAD_REQUEST)

    try:
        state = decode_state(state_blob)
    except InvalidOAuthState as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    if str(state.get('user_id')) != str(request.user.id):
        logger.warning("OAuth state mismatch for user %s", request.user.id)
        return Response({'error': 'Invalid state parameter'}, status=status.HTTP_400_BAD_REQUEST)

    try:
        shop_domain = normalize_shop_domain(shop)
        if state.get('shop') and state['shop'] != shop_domain:
            raise InvalidOAuthState('Shop does not match the one the flow was started for')
        token_data = ShopifyOAuth(get_store_config()).exchange_code(shop_domain, code)
        site = _upsert_site(request.user, shop_domain, token_data)
    except (InvalidShopDomain, InvalidOAuthState, OAuthExchangeError, ImproperlyConfigured) as e:
        logger.error("Shopify OAuth callback failed for user %s: %s", request.user.id, e)
        return _dashboard_redirect(shopify='error', message=str(e))

    logger.info("Connected Shopify store %s for user %s", site.shop_domain, request.user.id)
    return _dashboard_redirect(shopify='connected')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def shopify_disconnect(request):
    """
    Disconnect the store. Pages, keywords and content history are kept.

    POST /api/v1/shopify/disconnect/
    """
    site, error = get_site_or_error(request, require_token=True)
    if error:
        return Response({'error': 'No Shopify store connected'}, status=status.HTTP_400_BAD_REQUEST)

    site.disconnect()
    logger.info("Disconnected Shopify store %s for user %s", site.shop_domain, request.user.id)
    return Response({'success': True, 'message': 'Shopify store disconnected'})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def current_site(request):
    """GET /api/v1/site/"""
    site, error = get_site_or_error(request)
    if error:
        return error
    return Response(SiteSerializer(site).data)
