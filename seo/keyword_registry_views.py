"""
API endpoints for the keyword registry.

GET  /api/v1/keywords/                    - list keywords (source, limit, offset)
POST /api/v1/keywords/seed/               - generate keywords for products and collections
POST /api/v1/keywords/cleanup-duplicates/ - trim sources holding more than two keywords
"""
import logging

from django.db.models import Count
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from sites.conf import get_store_config
from sites.crypto import DecryptionError
from sites.permissions import get_site_or_error
from .keyword_registry import cleanup_duplicate_keywords, seed_keywords
from .models import Keyword
from .serializers import KeywordSerializer

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


def _store_or_400(request):
    site, error = get_site_or_error(request)
    if error:
        return None, Response({'error': 'No Shopify store connected'}, status=status.HTTP_400_BAD_REQUEST)
    return site, None


def _int_param(request, name, default):
    try:
        return max(0, int(request.query_params.get(name, default)))
    except (TypeError, ValueError):
        return default


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def keyword_list(request):
    site, error = _store_or_400(request)
    if error:
        return error

    source = request.query_params.get('source')
    limit = _int_param(request, 'limit', DEFAULT_LIMIT)
    offset = _int_param(request, 'offset', 0)

    qs = Keyword.objects.filter(site=site)
    if source:
        qs = qs.filter(source=source)
    total = qs.count()
    keywords = qs.order_by('-created_at', '-id')[offset:offset + limit]

    by_source = (
        Keyword.objects.filter(site=site)
        .values('source').annotate(count=Count('id')).order_by('source')
    )
    return Response({
        'success': True,
        'keywords': KeywordSerializer(keywords, many=True).data,
        'total': total,
        'limit': limit,
        'offset': offset,
        'summary': {
            'total': total,
            'by_source': [{'source': row['source'] or 'unknown', 'count': row['count']} for row in by_source],
        },
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def keyword_seed(request):
    """
    Generate up to two keywords for every product and collection page.

    POST /api/v1/keywords/seed/
    """
    site, error = _store_or_400(request)
    if error:
        return error
    if not site.is_connected:
        return Response({'error': 'Shopify access token not found'}, status=status.HTTP_400_BAD_REQUEST)

    from integrations.sync import client_for_site
    try:
        client = client_for_site(site)
    except DecryptionError as e:
        logger.error(f"Stored token for {site.shop_domain} could not be decrypted: {e}")
        return Response({'error': 'Stored access token is unreadable. Please reconnect your store.'},
                        status=status.HTTP_400_BAD_REQUEST)

    result = seed_keywords(site, client=client, delay=get_store_config().keyword_seed_delay)
    return Response({
        'success': True,
        'message': 'Keywords seeded successfully',
        **result,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def keyword_cleanup_duplicates(request):
    """
    Keep the two oldest keywords per source and report (or delete) the rest.

    POST /api/v1/keywords/cleanup-duplicates/?dry_run=false&source=product:123
    dry_run defaults to true.
    """
    site, error = _store_or_400(request)
    if error:
        return error

    dry_run = request.query_params.get('dry_run', 'true').lower() != 'false'
    source = request.query_params.get('source') or None
    result = cleanup_duplicate_keywords(site, source=source, dry_run=dry_run)
    return Response({'success': True, **result})
