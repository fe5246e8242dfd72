"""
Custom permissions for sites app.
"""
from rest_framework import permissions, status
from rest_framework.response import Response


class IsSiteOwner(permissions.BasePermission):
    """
    Permission to check if user owns the object's site.
    """
    def has_object_permission(self, request, view, obj):
        site = getattr(obj, 'site', obj)
        return site.user_id == request.user.id


def get_site_or_error(request, require_token=False):
    """
    Resolve the authenticated user's store.

    Returns (site, None) or (None, error Response). With require_token the store
    must also hold an access token, i.e. be connected.
    """
    site = request.user.connected_site
    if site is None:
        return None, Response(
            {'error': 'No Shopify store connected. Please connect your store first.'},
            status=status.HTTP_404_NOT_FOUND
        )
    if require_token and not site.is_connected:
        return None, Response(
            {'error': 'Shopify store is not connected. Please reconnect your store.'},
            status=status.HTTP_400_BAD_REQUEST
        )
    return site, None
