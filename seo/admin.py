from django.contrib import admin
from .models import ContentVersion, Keyword, Page


class ContentVersionInline(admin.TabularInline):
    model = ContentVersion
    extra = 0
    fields = ('version', 'keyword', 'reason', 'published_at', 'created_at')
    readonly_fields = fields


@admin.register(Page)
class PageAdmin(admin.ModelAdmin):
    list_display = ('title', 'type', 'site', 'tracking_enabled', 'last_updated')
    list_filter = ('type', 'tracking_enabled')
    search_fields = ('title', 'handle', 'shopify_id', 'site__shop_domain')
    readonly_fields = ('version_counter', 'created_at', 'updated_at')
    inlines = [ContentVersionInline]


@admin.register(ContentVersion)
class ContentVersionAdmin(admin.ModelAdmin):
    list_display = ('page', 'version', 'keyword', 'reason', 'published_at', 'created_at')
    list_filter = ('reason',)
    search_fields = ('page__title', 'keyword')


@admin.register(Keyword)
class KeywordAdmin(admin.ModelAdmin):
    list_display = ('keyword', 'source', 'site', 'created_at')
    search_fields = ('keyword', 'source', 'site__shop_domain')
