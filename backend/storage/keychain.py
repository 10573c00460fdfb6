"""OS keychain integration for the token signing secret."""

from __future__ import annotations

import logging
import os
import secrets

import keyring as _keyring_module

logger = logging.getLogger(__name__)

_SERVICE_NAME = "fountain"
_JWT_SECRET_KEY = "jwt_signing_secret"


class KeychainManager:
    """Store and retrieve secrets via OS keychain, with in-memory fallback."""

    def __init__(self) -> None:
        self._available = False
        self._fallback: dict[str, str] = {}
        try:
            _keyring_module.get_credential(_SERVICE_NAME, None)
            self._available = True
            logger.info("OS keychain is available")
        except Exception:
            logger.warning(
                "OS keychain unavailable; secrets will be stored in memory only"
            )

    def get_key(self, name: str) -> str | None:
        if self._available:
            try:
                return _keyring_module.get_password(_SERVICE_NAME, name)
            except Exception:
                logger.warning("Failed to read %s from keychain; using fallback", name)
        return self._fallback.get(name)

    def set_key(self, name: str, value: str) -> None:
        if self._available:
            try:
                _keyring_module.set_password(_SERVICE_NAME, name, value)
                return
            except Exception:
                logger.warning("Failed to write to keychain; using fallback")
        self._fallback[name] = value

    def delete_key(self, name: str) -> None:
        if self._available:
            try:
                _keyring_module.delete_password(_SERVICE_NAME, name)
                return
            except Exception:
                logger.warning("Failed to delete %s from keychain", name)
        self._fallback.pop(name, None)

    def get_jwt_secret(self) -> str:
        """Return the token signing secret.

        ``JWT_SECRET`` wins when set. Otherwise a secret is generated on first
        use and kept in the keychain so tokens survive restarts.
        """
        env_secret = os.getenv("JWT_SECRET", "")
        if env_secret:
            return env_secret
        secret = self.get_key(_JWT_SECRET_KEY)
        if not secret:
            secret = secrets.token_urlsafe(48)
            self.set_key(_JWT_SECRET_KEY, secret)
            logger.info("Generated new token signing secret")
        return secret

    def rotate_jwt_secret(self) -> str:
        """Replace the stored signing secret, invalidating every issued token."""
        secret = secrets.token_urlsafe(48)
        self.set_key(_JWT_SECRET_KEY, secret)
        return secret


_keychain_instance: KeychainManager | None = None


def get_keychain() -> KeychainManager:
    """Return the module-level KeychainManager singleton."""
    global _keychain_instance
    if _keychain_instance is None:
        _keychain_instance = KeychainManager()
    return _keychain_instance
