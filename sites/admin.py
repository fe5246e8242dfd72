from django.contrib import admin
from .models import Site


@admin.register(Site)
class SiteAdmin(admin.ModelAdmin):
    list_display = ('name', 'shop_domain', 'user', 'is_active', 'connected_at', 'last_synced_at')
    list_filter = ('is_active', 'created_at')
    search_fields = ('name', 'shop_domain', 'user__email')
    readonly_fields = ('access_token', 'scopes', 'connected_at', 'created_at', 'updated_at', 'last_synced_at')
