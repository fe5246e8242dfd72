"""
Shopify catalog sync.
Pulls products, collections and blog articles into Page rows.
"""
import logging

from django.db import transaction
from django.db.models import Count
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from seo.models import Page
from sites.conf import get_store_config
from sites.crypto import DecryptionError
from sites.permissions import get_site_or_error
from .shopify import ShopifyClient

logger = logging.getLogger(__name__)


class CatalogSyncError(Exception):
    """A sync stage failed. Earlier stages are already committed."""

    def __init__(self, stage, counts):
        self.stage = stage
        self.counts = dict(counts)
        super().__init__(f"Catalog sync failed while syncing {stage}")


def _parse_timestamp(value):
    return parse_datetime(value) if value else None


def _upsert_products(site, client):
    products = client.fetch_products()
    with transaction.atomic():
        for product in products:
            Page.objects.update_or_create(
                site=site,
                shopify_id=product['id'],
                type=Page.PRODUCT,
                defaults={
                    'title': product.get('title') or '',
                    'handle': product.get('handle') or '',
                    'url': f"https://{site.shop_domain}/products/{product.get('handle', '')}",
                    'last_updated': _parse_timestamp(product.get('updated_at')) or timezone.now(),
                },
            )
    return len(products)


def _upsert_collections(site, client):
    collections = client.fetch_collections()
    now = timezone.now()
    with transaction.atomic():
        for collection in collections:
            Page.objects.update_or_create(
                site=site,
                shopify_id=collection['id'],
                type=Page.COLLECTION,
                defaults={
                    'title': collection.get('title') or '',
                    'handle': collection.get('handle') or '',
                    'url': f"https://{site.shop_domain}/collections/{collection.get('handle', '')}",
                    'last_updated': now,
                },
            )
    return len(collections)


def _upsert_articles(site, client):
    articles = client.fetch_articles()
    now = timezone.now()
    with transaction.atomic():
        for article in articles:
            Page.objects.update_or_create(
                site=site,
                shopify_id=article['id'],
                type=Page.ARTICLE,
                defaults={
                    'title': article.get('title') or '',
                    'handle': article.get('handle') or '',
                    'url': f"https://{site.shop_domain}/blogs/{article.get('blog_handle', '')}/{article.get('handle', '')}",
                    'shopify_blog_id': article.get('blog_id'),
                    'last_updated': _parse_timestamp(article.get('published_at')) or now,
                },
            )
    return len(articles)


SYNC_STAGES = [
    ('products', _upsert_products),
    ('collections', _upsert_collections),
    ('articles', _upsert_articles),
]


def sync_catalog(site, client):
    """
    Run every sync stage in order. Additive: pages missing upstream are kept.

    Returns {"products": n, "collections": n, "articles": n}.
    Raises CatalogSyncError (chained to the cause) when a stage fails.
    """
    counts = {}
    for stage, upsert in SYNC_STAGES:
        try:
            counts[stage] = upsert(site, client)
        except Exception as e:
            logger.error("Catalog sync for %s failed at %s: %s", site.shop_domain, stage, e)
            raise CatalogSyncError(stage, counts) from e
        logger.info("Synced %d %s for %s", counts[stage], stage, site.shop_domain)
    return counts


def client_for_site(site):
    config = get_store_config()
    return ShopifyClient(site.shop_domain, site.get_access_token(), config.shopify_api_version)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sync_store(request):
    """
    Sync the connected store's catalog.

    POST /api/v1/store/sync/
    Returns: { "success": true, "synced": {...}, "stored": {...}, "total": n }
    """
    site, error = get_site_or_error(request)
    if error:
        return Response({'error': 'No Shopify store connected'}, status=status.HTTP_400_BAD_REQUEST)
    if not site.is_connected:
        return Response({'error': 'Shopify access token not found. Please reconnect your store.'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        client = client_for_site(site)
    except DecryptionError as e:
        logger.error("Stored token for %s could not be decrypted: %s", site.shop_domain, e)
        return Response({'error': 'Stored access token is unreadable. Please reconnect your store.'},
                        status=status.HTTP_400_BAD_REQUEST)

    try:
        synced = sync_catalog(site, client)
    except CatalogSyncError as e:
        return Response({
            'error': 'Failed to sync store',
            'stage': e.stage,
            'message': str(e.__cause__ or e),
            'synced': e.counts,
        }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    site.last_synced_at = timezone.now()
    site.save(update_fields=['last_synced_at', 'updated_at'])

    stored = {
        row['type']: row['n']
        for row in Page.objects.filter(site=site).values('type').annotate(n=Count('id'))
    }
    stored_counts = {
        'products': stored.get(Page.PRODUCT, 0),
        'collections': stored.get(Page.COLLECTION, 0),
        'articles': stored.get(Page.ARTICLE, 0),
    }
    return Response({
        'success': True,
        'message': 'Store synced successfully',
        'synced': synced,
        'stored': stored_counts,
        'total': sum(stored_counts.values()),
    })
