"""
Encryption of Shopify access tokens at rest.

AES-256-CBC with a random 16-byte IV per call. Stored form is
"<iv hex>:<ciphertext hex>".
"""
import logging
import os
import re
from typing import Optional

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from django.core.exceptions import ImproperlyConfigured

from .conf import StoreConfig, get_store_config

logger = logging.getLogger(__name__)

KEY_HEX_LENGTH = 64
IV_LENGTH = 16
_HEX_KEY_RE = re.compile(r'^[0-9a-fA-F]{64}$')


class DecryptionError(Exception):
    """Raised when a stored token blob cannot be decrypted."""


def validate_key(key_hex: str) -> bytes:
    """Return the raw 32-byte key, or raise ImproperlyConfigured."""
    if not key_hex:
        raise ImproperlyConfigured('SHOPIFY_ENCRYPTION_KEY is required for token encryption')
    if len(key_hex) != KEY_HEX_LENGTH:
        raise ImproperlyConfigured(
            f'SHOPIFY_ENCRYPTION_KEY must be exactly {KEY_HEX_LENGTH} characters '
            f'(32 bytes in hex). Current length: {len(key_hex)}'
        )
    if not _HEX_KEY_RE.match(key_hex):
        raise ImproperlyConfigured(
            'SHOPIFY_ENCRYPTION_KEY must be a valid hexadecimal string (64 hex characters)'
        )
    return bytes.fromhex(key_hex)


class TokenCipher:
    """Symmetric cipher for OAuth access tokens."""

    def __init__(self, key_hex: str):
        self._key = validate_key(key_hex)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode('utf-8')) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, blob: str) -> str:
        if not blob or ':' not in blob:
            raise DecryptionError('Malformed token blob: expected "<iv>:<ciphertext>"')
        iv_hex, ciphertext_hex = blob.split(':', 1)
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError as exc:
            raise DecryptionError('Malformed token blob: components must be hex') from exc
        if len(iv) != IV_LENGTH:
            raise DecryptionError(f'Malformed token blob: IV must be {IV_LENGTH} bytes')
        if not ciphertext or len(ciphertext) % IV_LENGTH:
            raise DecryptionError('Malformed token blob: ciphertext is not a whole number of blocks')

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode('utf-8')
        except ValueError as exc:
            # Bad padding or non-UTF-8 output: wrong key or corrupted ciphertext
            raise DecryptionError('Token could not be decrypted with the configured key') from exc


_cipher: Optional[TokenCipher] = None


def build_token_cipher(config: StoreConfig) -> TokenCipher:
    """
    Build the cipher for *config*.

    Production requires a valid key. Elsewhere a missing key falls back to a
    random per-process key with a warning; tokens encrypted with it do not
    survive a restart.
    """
    if config.encryption_key or config.is_production:
        return TokenCipher(config.encryption_key or '')
    logger.warning("SHOPIFY_ENCRYPTION_KEY not set. Generate one with: openssl rand -hex 32")
    return TokenCipher(os.urandom(32).hex())


def get_token_cipher() -> TokenCipher:
    global _cipher
    if _cipher is None:
        _cipher = build_token_cipher(get_store_config())
    return _cipher


def reset_token_cipher():
    global _cipher
    _cipher = None


def encrypt_token(token: str) -> str:
    return get_token_cipher().encrypt(token)


def decrypt_token(blob: str) -> str:
    return get_token_cipher().decrypt(blob)
