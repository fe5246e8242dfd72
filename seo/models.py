"""
SEO models: catalog pages, their generated content versions, and the keyword registry.
"""
from django.db import models
from sites.models import Site


class Page(models.Model):
    """A product, collection or blog article synced from the store."""
    PRODUCT = 'PRODUCT'
    COLLECTION = 'COLLECTION'
    ARTICLE = 'ARTICLE'
    TYPE_CHOICES = [
        (PRODUCT, 'Product'),
        (COLLECTION, 'Collection'),
        (ARTICLE, 'Article'),
    ]

    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name='pages')
    shopify_id = models.CharField(max_length=64, help_text="Shopify resource id, as a string")
    type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    title = models.CharField(max_length=500)
    handle = models.CharField(max_length=500, blank=True)
    url = models.URLField(max_length=1000)
    shopify_blog_id = models.CharField(max_length=64, blank=True, null=True,
        help_text="Owning blog id (articles only)")
    last_updated = models.DateTimeField(null=True, blank=True)
    tracking_enabled = models.BooleanField(default=False,
        help_text="Set on first successful publish")
    version_counter = models.PositiveIntegerField(default=0,
        help_text="Last allocated content version number")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'pages'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['site', 'shopify_id', 'type'], name='uniq_page_site_shopify_id_type'),
        ]
        indexes = [
            models.Index(fields=['site', 'type'], name='pages_site_type_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.type})"

    @property
    def latest_version(self):
        return self.content_versions.order_by('-version').first()


class ContentVersion(models.Model):
    """Generated content for a page. Appended, never edited after creation except for published_at."""
    page = models.ForeignKey(Page, on_delete=models.CASCADE, related_name='content_versions')
    version = models.PositiveIntegerField()
    content = models.TextField()
    keyword = models.CharField(max_length=500)
    reason = models.CharField(max_length=100, default='initial_creation')
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'content_versions'
        ordering = ['-version']
        constraints = [
            models.UniqueConstraint(fields=['page', 'version'], name='uniq_content_version_page_version'),
        ]

    def __str__(self):
        return f"{self.page.title} v{self.version}"

    @property
    def is_published(self):
        return self.published_at is not None


class Keyword(models.Model):
    """
    Keyword registry entry. One row per phrase per site; source records which
    page produced it ("product:<id>" or "collection:<id>").
    """
    site = models.ForeignKey(Site, on_delete=models.CASCADE, related_name='keywords')
    keyword = models.CharField(max_length=500)
    source = models.CharField(max_length=255, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'keywords'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['site', 'keyword'], name='uniq_keyword_site_keyword'),
        ]

    def __str__(self):
        return f"{self.keyword} ({self.source})"
