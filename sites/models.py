"""
Connected Shopify store.
"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from .crypto import decrypt_token, encrypt_token


class Site(models.Model):
    """
    A Shopify store connected through OAuth.
    Each user has at most one store; reconnecting updates the same row.
    """
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='site'
    )
    name = models.CharField(max_length=255)
    shop_domain = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Canonical domain, e.g. mystore.myshopify.com"
    )
    store_url = models.URLField()
    access_token = models.TextField(
        blank=True,
        null=True,
        help_text="Encrypted OAuth access token (iv:ciphertext, hex)"
    )
    scopes = models.CharField(max_length=500, blank=True, default='')
    is_active = models.BooleanField(default=True)
    connected_at = models.DateTimeField(null=True, blank=True)
    last_synced_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'sites'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.name} ({self.shop_domain})"

    @property
    def is_connected(self):
        return self.is_active and bool(self.access_token)

    def set_access_token(self, token):
        self.access_token = encrypt_token(token)

    def get_access_token(self):
        """Plaintext token, or None when the store is disconnected."""
        if not self.access_token:
            return None
        return decrypt_token(self.access_token)

    def connect(self, token, scopes=''):
        self.set_access_token(token)
        self.scopes = scopes or ''
        self.is_active = True
        self.connected_at = timezone.now()

    def disconnect(self):
        self.access_token = None
        self.is_active = False
        self.save(update_fields=['access_token', 'is_active', 'updated_at'])
