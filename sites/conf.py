"""
Store configuration, built once from Django settings.

Everything that talks to Shopify or the LLM provider receives a StoreConfig
explicitly instead of reading os.environ at the call site. The cached instance
is dropped whenever a setting changes (override_settings in tests).
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.signals import setting_changed
from django.dispatch import receiver

logger = logging.getLogger(__name__)

_STORE_SETTINGS = {
    'APP_URL',
    'FRONTEND_URL',
    'ENVIRONMENT',
    'SHOPIFY_API_KEY',
    'SHOPIFY_API_SECRET',
    'SHOPIFY_SCOPES',
    'SHOPIFY_API_VERSION',
    'SHOPIFY_ENCRYPTION_KEY',
    'OPENAI_API_KEY',
    'OPENAI_MODEL',
    'KEYWORD_SEED_DELAY_SECONDS',
}


@dataclass(frozen=True)
class StoreConfig:
    shopify_api_key: str
    shopify_api_secret: str
    shopify_scopes: str
    shopify_api_version: str
    encryption_key: Optional[str]
    app_url: str
    frontend_url: str
    openai_api_key: str
    openai_model: str
    keyword_seed_delay: float
    environment: str = 'development'

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    @property
    def redirect_uri(self) -> str:
        """OAuth callback URL registered with the Shopify app."""
        return f"{self.app_url.rstrip('/')}/api/v1/shopify/callback/"

    @property
    def dashboard_url(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/dashboard"

    @classmethod
    def from_settings(cls) -> 'StoreConfig':
        environment = getattr(settings, 'ENVIRONMENT', 'development').lower()
        app_url = (getattr(settings, 'APP_URL', '') or '').strip()
        if not app_url:
            if environment == 'production':
                from django.core.exceptions import ImproperlyConfigured
                raise ImproperlyConfigured('APP_URL is required in production')
            logger.warning("APP_URL not set. Using http://localhost:8000 for the OAuth redirect URI.")
            app_url = 'http://localhost:8000'

        return cls(
            shopify_api_key=getattr(settings, 'SHOPIFY_API_KEY', ''),
            shopify_api_secret=getattr(settings, 'SHOPIFY_API_SECRET', ''),
            shopify_scopes=getattr(settings, 'SHOPIFY_SCOPES', ''),
            shopify_api_version=getattr(settings, 'SHOPIFY_API_VERSION', '2024-10'),
            encryption_key=getattr(settings, 'SHOPIFY_ENCRYPTION_KEY', '') or None,
            app_url=app_url,
            frontend_url=getattr(settings, 'FRONTEND_URL', 'http://localhost:3000'),
            openai_api_key=getattr(settings, 'OPENAI_API_KEY', ''),
            openai_model=getattr(settings, 'OPENAI_MODEL', 'gpt-4o-mini'),
            keyword_seed_delay=float(getattr(settings, 'KEYWORD_SEED_DELAY_SECONDS', 0.1)),
            environment=environment,
        )


_config: Optional[StoreConfig] = None


def get_store_config() -> StoreConfig:
    global _config
    if _config is None:
        _config = StoreConfig.from_settings()
    return _config


@receiver(setting_changed)
def _reset_store_config(sender, setting, **kwargs):
    global _config
    if setting in _STORE_SETTINGS:
        _config = None
        from .crypto import reset_token_cipher
        reset_token_cipher()
