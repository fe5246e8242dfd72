"""
Serializers for the connected store.
"""
from rest_framework import serializers

from .models import Site


class SiteSerializer(serializers.ModelSerializer):
    """Public view of a store; the access token never leaves the server."""
    is_connected = serializers.BooleanField(read_only=True)
    page_count = serializers.SerializerMethodField()

    class Meta:
        model = Site
        fields = (
            'id', 'name', 'shop_domain', 'store_url', 'scopes', 'is_active', 'is_connected',
            'connected_at', 'last_synced_at', 'created_at', 'updated_at', 'page_count',
        )
        read_only_fields = fields

    def get_page_count(self, obj):
        return obj.pages.count()
