"""
Content generation and publishing endpoints.

POST /api/v1/content/generate/ - Generate a new content version for a page
POST /api/v1/content/publish/  - Publish a page's latest version to Shopify
"""
import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from sites.crypto import DecryptionError
from .content_generation import ContentGenerationError, generate_content
from .models import Page
from .publishing import PublishError, create_content_version, publish_latest_version

logger = logging.getLogger(__name__)


def _get_owned_page(request, page_id):
    """Returns (page, error_response)."""
    try:
        page = Page.objects.select_related('site').get(pk=page_id)
    except (Page.DoesNotExist, ValueError, TypeError):
        return None, Response({'error': 'Page not found'}, status=status.HTTP_404_NOT_FOUND)
    if page.site.user_id != request.user.id:
        return None, Response(
            {'error': 'Unauthorized: Page does not belong to your site'},
            status=status.HTTP_403_FORBIDDEN
        )
    return page, None


def _product_description(page):
    """Prompt context for products. Best effort: never a reason to fail."""
    if page.type != Page.PRODUCT or not page.site.is_connected:
        return None
    from integrations.sync import client_for_site
    try:
        return client_for_site(page.site).fetch_product_description(page.shopify_id)
    except DecryptionError as e:
        logger.warning(f"Could not fetch product description for page {page.id}: {e}")
        return None


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def generate_content_view(request):
    """
    Generate SEO content for a page and store it as a new version.

    POST /api/v1/content/generate/
    Body: { "page_id": 1, "primary_keyword": "...", "page_type": "PRODUCT" }
    """
    page_id = request.data.get('page_id')
    primary_keyword = (request.data.get('primary_keyword') or '').strip()
    page_type = request.data.get('page_type')

    if not page_id or not primary_keyword or not page_type:
        return Response(
            {'error': 'Missing required fields: page_id, primary_keyword, page_type'},
            status=status.HTTP_400_BAD_REQUEST
        )
    if page_type not in dict(Page.TYPE_CHOICES):
        return Response(
            {'error': 'Invalid page_type. Must be PRODUCT, COLLECTION, or ARTICLE'},
            status=status.HTTP_400_BAD_REQUEST
        )

    page, error = _get_owned_page(request, page_id)
    if error:
        return error
    if page.type != page_type:
        return Response(
            {'error': f"Page type mismatch. Expected {page.type}, got {page_type}"},
            status=status.HTTP_400_BAD_REQUEST
        )

    logger.info(f"Generating content for {page_type} page '{page.title}' with keyword '{primary_keyword}'")
    try:
        html = generate_content(page.type, page.title, primary_keyword, _product_description(page))
    except ContentGenerationError as e:
        return Response(
            {'error': 'Failed to generate content', 'message': str(e)},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    version = create_content_version(page, html, primary_keyword)
    return Response({
        'success': True,
        'content': version.content,
        'version': version.version,
        'page_id': page.id,
        'page_title': page.title,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def publish_content_view(request):
    """
    Publish the latest content version of a page to Shopify.

    POST /api/v1/content/publish/
    Body: { "page_id": 1 }
    """
    page_id = request.data.get('page_id')
    if not page_id:
        return Response({'error': 'Missing required field: page_id'}, status=status.HTTP_400_BAD_REQUEST)

    page, error = _get_owned_page(request, page_id)
    if error:
        return error

    try:
        version = publish_latest_version(page)
    except PublishError as e:
        if e.status_code >= 500:
            body = {'error': 'Failed to publish to Shopify', 'message': e.message, 'details': e.details}
        else:
            body = {'error': e.message, **e.extra}
            if e.details:
                body['details'] = e.details
        return Response(body, status=e.status_code)

    return Response({
        'success': True,
        'message': 'Content published successfully',
        'page_id': page.id,
        'page_title': page.title,
        'page_type': page.type,
        'version': version.version,
        'published_at': version.published_at,
        'tracking_enabled': page.tracking_enabled,
    })
