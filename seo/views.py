"""
Views for catalog pages and their content versions.
"""
from django.db.models import Count
from rest_framework import viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from sites.permissions import IsSiteOwner
from .models import Page
from .serializers import PageListSerializer, PageSerializer


class PageViewSet(viewsets.ReadOnlyModelViewSet):
    """
    ViewSet for viewing the connected store's pages.

    list: GET /api/v1/pages/?type=PRODUCT - pages with their latest version
    retrieve: GET /api/v1/pages/{id}/ - page with every content version
    """
    permission_classes = [IsAuthenticated, IsSiteOwner]

    def get_queryset(self):
        """Return pages of the current user's store."""
        queryset = Page.objects.filter(site__user=self.request.user)

        page_type = self.request.query_params.get('type')
        if page_type:
            queryset = queryset.filter(type=page_type.upper())

        if self.action == 'list':
            return queryset.annotate(
                content_versions_count=Count('content_versions')
            ).prefetch_related('content_versions').order_by('type', 'title')
        return queryset.prefetch_related('content_versions')

    def get_serializer_class(self):
        """Use lightweight serializer for list, full serializer for detail."""
        if self.action == 'list':
            return PageListSerializer
        return PageSerializer

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        by_type = {
            row['type']: row['count']
            for row in Page.objects.filter(site__user=request.user).values('type').annotate(count=Count('id'))
        }
        summary = {
            'total': sum(by_type.values()),
            'by_type': {t: by_type.get(t, 0) for t, _ in Page.TYPE_CHOICES},
        }
        if isinstance(response.data, dict):
            response.data['summary'] = summary
        else:
            response.data = {'results': response.data, 'summary': summary}
        return response
