"""
API URL routing for storeseo_backend.
All API endpoints are prefixed with /api/v1/
"""
from django.urls import path, include
from django.views.decorators.csrf import csrf_exempt

from .views import health_check


def _lazy(module, attr):
    """Lazy view import to avoid AppRegistryNotReady. DRF applies its own CSRF check to session auth."""
    @csrf_exempt
    def view(*args, **kwargs):
        import importlib
        mod = importlib.import_module(module)
        return getattr(mod, attr)(*args, **kwargs)
    return view


urlpatterns = [
    # Health check (no auth) - GET /api/v1/health/
    path('health/', health_check),
    # Dashboard authentication
    path('auth/', include('accounts.urls')),
    # Shopify store connection (OAuth) and the connected store
    path('shopify/auth/', _lazy('sites.views', 'shopify_auth'), name='shopify-auth'),
    path('shopify/callback/', _lazy('sites.views', 'shopify_callback'), name='shopify-callback'),
    path('shopify/disconnect/', _lazy('sites.views', 'shopify_disconnect'), name='shopify-disconnect'),
    path('site/', _lazy('sites.views', 'current_site'), name='current-site'),
    # Catalog sync (products, collections, articles)
    path('store/sync/', _lazy('integrations.sync', 'sync_store'), name='store-sync'),
    # Keywords
    path('keywords/', _lazy('seo.keyword_registry_views', 'keyword_list'), name='keyword-list'),
    path('keywords/seed/', _lazy('seo.keyword_registry_views', 'keyword_seed'), name='keyword-seed'),
    path('keywords/cleanup-duplicates/', _lazy('seo.keyword_registry_views', 'keyword_cleanup_duplicates'),
         name='keyword-cleanup-duplicates'),
    # Content generation and publishing
    path('content/generate/', _lazy('seo.content_views', 'generate_content_view'), name='content-generate'),
    path('content/publish/', _lazy('seo.content_views', 'publish_content_view'), name='content-publish'),
    # Page listing and detail
    path('pages/', include('seo.urls')),
]
