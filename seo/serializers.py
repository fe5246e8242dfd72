"""
Serializers for pages, content versions and keywords.
"""
from rest_framework import serializers
from .models import ContentVersion, Keyword, Page


class ContentVersionSerializer(serializers.ModelSerializer):
    is_published = serializers.BooleanField(read_only=True)

    class Meta:
        model = ContentVersion
        fields = ('id', 'version', 'content', 'keyword', 'reason', 'published_at', 'is_published', 'created_at')
        read_only_fields = fields


class ContentVersionSummarySerializer(serializers.ModelSerializer):
    """Version without its HTML body, for list views."""

    class Meta:
        model = ContentVersion
        fields = ('id', 'version', 'keyword', 'reason', 'published_at', 'created_at')
        read_only_fields = fields


class PageListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for page lists."""
    latest_version = serializers.SerializerMethodField()
    content_versions_count = serializers.IntegerField(read_only=True)

    class Meta:
        model = Page
        fields = (
            'id', 'shopify_id', 'type', 'title', 'handle', 'url', 'last_updated',
            'tracking_enabled', 'latest_version', 'content_versions_count', 'created_at',
        )

    def get_latest_version(self, obj):
        versions = list(obj.content_versions.all())
        if not versions:
            return None
        return ContentVersionSummarySerializer(max(versions, key=lambda v: v.version)).data


class PageSerializer(serializers.ModelSerializer):
    """Page with all of its content versions, newest first."""
    content_versions = ContentVersionSerializer(many=True, read_only=True)

    class Meta:
        model = Page
        fields = (
            'id', 'shopify_id', 'type', 'title', 'handle', 'url', 'shopify_blog_id',
            'last_updated', 'tracking_enabled', 'content_versions', 'created_at', 'updated_at',
        )
        read_only_fields = fields


class KeywordSerializer(serializers.ModelSerializer):

    class Meta:
        model = Keyword
        fields = ('id', 'keyword', 'source', 'created_at')
        read_only_fields = fields
