"""
Content versions and publishing them to Shopify.

Each generation appends a new ContentVersion; publishing pushes the highest
version's HTML to the product or article body and stamps published_at.
"""
import logging

import requests
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from integrations.shopify import ShopifyAPIError, ShopifyClient
from sites.conf import get_store_config
from sites.crypto import DecryptionError
from .models import ContentVersion, Page

logger = logging.getLogger(__name__)

UPSTREAM_MESSAGES = {
    401: ('Missing required Shopify permissions. Please ensure your app has write_products and '
          'write_content scopes. Re-authenticate your store after adding these scopes.'),
    403: ('Missing required Shopify permissions. Please ensure your app has write_products and '
          'write_content scopes. Re-authenticate your store after adding these scopes.'),
    404: 'Product or article not found in Shopify. The item may have been deleted.',
    429: 'Rate limit exceeded. Please wait a moment and try again.',
}


class PublishError(Exception):
    """A publish request that cannot be completed; carries the HTTP status to report."""

    def __init__(self, message, status_code=400, details=None, **extra):
        self.message = message
        self.status_code = status_code
        self.details = details
        self.extra = extra
        super().__init__(message)


def translate_upstream_error(exc):
    """User-facing message for a Shopify failure. Unknown statuses keep the raw message."""
    status_code = getattr(exc, 'status_code', None)
    return UPSTREAM_MESSAGES.get(status_code, str(exc))


def create_content_version(page, html, keyword, reason=None):
    """
    Append a new version for *page*.

    The page-scoped counter is bumped with an UPDATE, which takes the row lock,
    so concurrent calls get distinct numbers.
    """
    with transaction.atomic():
        Page.objects.filter(pk=page.pk).update(version_counter=F('version_counter') + 1)
        version = Page.objects.values_list('version_counter', flat=True).get(pk=page.pk)
        if reason is None:
            reason = 'initial_creation' if version == 1 else 'regeneration'
        content_version = ContentVersion.objects.create(
            page=page,
            version=version,
            content=html,
            keyword=keyword,
            reason=reason,
        )
    page.version_counter = version
    logger.info(f"Created content version {version} for page '{page.title}'")
    return content_version


def _client_for(site):
    try:
        token = site.get_access_token()
    except DecryptionError as e:
        raise PublishError('Stored access token is unreadable. Please reconnect your store.',
                           details=str(e)) from e
    return ShopifyClient(site.shop_domain, token, get_store_config().shopify_api_version)


def publish_latest_version(page, client=None):
    """
    Publish the highest version of *page*. Returns the updated ContentVersion.

    Raises PublishError for every refusal and upstream failure.
    """
    latest = page.content_versions.order_by('-version').first()
    if latest is None:
        raise PublishError('No content versions found for this page. Generate content first.')
    if latest.published_at:
        raise PublishError('This version is already published', published_at=latest.published_at)
    if page.type == Page.COLLECTION:
        raise PublishError('Collection pages cannot be published directly. '
                           'Use metafields or theme customization.')
    site = page.site
    if not site.is_connected:
        raise PublishError('Shopify access token not found')

    client = client or _client_for(site)
    try:
        if page.type == Page.PRODUCT:
            client.update_product_body(page.shopify_id, latest.content)
        else:
            blog_id = page.shopify_blog_id or client.find_blog_id_for_article(page.shopify_id)
            if not blog_id:
                raise PublishError('Could not find blog for this article', status_code=404)
            client.update_article_body(blog_id, page.shopify_id, latest.content)
    except (ShopifyAPIError, requests.RequestException) as e:
        logger.error(f"Publishing page {page.id} to Shopify failed: {e}")
        raise PublishError(translate_upstream_error(e), status_code=500, details=str(e)) from e

    with transaction.atomic():
        latest.published_at = timezone.now()
        latest.save(update_fields=['published_at'])
        if not page.tracking_enabled:
            page.tracking_enabled = True
            page.save(update_fields=['tracking_enabled', 'updated_at'])
    logger.info(f"Published version {latest.version} of page '{page.title}'")
    return latest
