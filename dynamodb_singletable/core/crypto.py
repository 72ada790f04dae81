"""
Field-level encryption with named, rotatable crypto profiles.

Tokens are self-describing: ``profile:tag:ivHex:ciphertext``. The profile
name travels with the ciphertext, so data written under an old profile stays
readable as long as that profile remains installed, while new writes use the
current one.
"""

import base64
import hashlib
import logging
import os
import threading
from types import MappingProxyType
from typing import Any, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import ConfigurationError, TamperError

logger = logging.getLogger(__name__)

IV_LENGTH = 16

CIPHER_MODES = {
    'aes-256-gcm': modes.GCM,
    'aes-256-cbc': modes.CBC,
    'aes-256-ctr': modes.CTR,
}

# Block modes that need PKCS7 padding
_PADDED = ('aes-256-cbc',)


class CryptoProfile(BaseModel):
    """A named cipher with a secret derived from its password."""

    name: str
    cipher: str
    password: str = Field(repr=False)
    secret: bytes = Field(repr=False)

    model_config = ConfigDict(frozen=True)

    @property
    def authenticated(self) -> bool:
        """True for AEAD ciphers, which produce an authentication tag."""
        return self.cipher.endswith('-gcm')

    @classmethod
    def derive(cls, name: str, cipher: str, password: str) -> 'CryptoProfile':
        """Build a profile, hashing the password into a 256-bit secret."""
        if cipher not in CIPHER_MODES:
            raise ConfigurationError(
                f'Unsupported cipher "{cipher}" for crypto profile "{name}". Supported: {sorted(CIPHER_MODES)}',
                'crypto'
            )
        if not password:
            raise ConfigurationError(f'Missing password for crypto profile "{name}"', 'crypto')
        secret = hashlib.sha256(password.encode('utf-8')).digest()
        return cls(name=name, cipher=cipher, password=password, secret=secret)


def _setting(settings: Any, key: str, default: Optional[str] = None):
    if isinstance(settings, Mapping):
        return settings.get(key, default)
    return getattr(settings, key, default)


class CryptoRegistry:
    """
    Registry of installed crypto profiles.

    ``install`` replaces the whole profile mapping in one assignment and bumps
    ``version``; encrypt and decrypt read a single snapshot, so re-installing
    never exposes a half-built mapping to in-flight calls.
    """

    def __init__(self, profiles: Optional[Mapping[str, Any]] = None):
        self._lock = threading.Lock()
        self._profiles: Mapping[str, CryptoProfile] = MappingProxyType({})
        self.version = 0
        if profiles:
            self.install(profiles)

    @property
    def profiles(self) -> Mapping[str, CryptoProfile]:
        return self._profiles

    def install(self, profiles: Mapping[str, Any]) -> int:
        """Install profiles, replacing any previously installed set.

        Args:
            profiles: Mapping of profile name to settings with ``cipher`` and
                ``password`` (a dict, ``CryptoSettings`` or ``CryptoProfile``)

        Returns:
            The new registry version
        """
        installed = {}
        for name, settings in profiles.items():
            installed[name] = CryptoProfile.derive(
                name,
                _setting(settings, 'cipher', 'aes-256-gcm'),
                _setting(settings, 'password')
            )
        with self._lock:
            self._profiles = MappingProxyType(installed)
            self.version += 1
            version = self.version
        logger.debug(f"Installed crypto profiles {sorted(installed)} (version {version})")
        return version

    def get(self, name: str) -> CryptoProfile:
        profiles = self._profiles
        if not profiles:
            raise ConfigurationError("No database secret or cipher defined", 'crypto')
        profile = profiles.get(name)
        if profile is None:
            raise ConfigurationError(f'Database crypto not defined for "{name}"', 'crypto')
        return profile

    def encrypt(self, text: Optional[str], name: str = 'primary') -> Optional[str]:
        """Encrypt text under the named profile.

        Returns:
            Token ``profile:tag:ivHex:ciphertext``; the tag is empty for
            non-AEAD ciphers. Empty input is returned unchanged.
        """
        if not text:
            return text
        profile = self.get(name)
        iv = os.urandom(IV_LENGTH)
        encryptor = Cipher(
            algorithms.AES(profile.secret),
            CIPHER_MODES[profile.cipher](iv),
            backend=default_backend()
        ).encryptor()

        data = text.encode('utf-8')
        if profile.cipher in _PADDED:
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            data = padder.update(data) + padder.finalize()

        crypted = encryptor.update(data) + encryptor.finalize()
        tag = base64.b64encode(encryptor.tag).decode('ascii') if profile.authenticated else ''
        return f"{profile.name}:{tag}:{iv.hex()}:{base64.b64encode(crypted).decode('ascii')}"

    def decrypt(self, text: Optional[str]) -> Optional[str]:
        """Decrypt a token produced by ``encrypt``.

        Input that is not a four-field token is returned unchanged, so
        plaintext and ciphertext values can coexist during a migration.

        Raises:
            ConfigurationError: The token names a profile that is not installed
            TamperError: Authentication failed or the token is corrupt
        """
        if not text:
            return text
        parts = text.split(':')
        if len(parts) != 4:
            return text
        name, tag, iv, data = parts
        if not name or not iv or not data:
            return text

        profile = self.get(name)
        try:
            iv_bytes = bytes.fromhex(iv)
            ciphertext = base64.b64decode(data, validate=True)
            if profile.authenticated:
                if not tag:
                    raise TamperError("Missing authentication tag", profile=name)
                mode = modes.GCM(iv_bytes, base64.b64decode(tag, validate=True))
            else:
                mode = CIPHER_MODES[profile.cipher](iv_bytes)

            decryptor = Cipher(algorithms.AES(profile.secret), mode, backend=default_backend()).decryptor()
            plain = decryptor.update(ciphertext) + decryptor.finalize()

            if profile.cipher in _PADDED:
                unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
                plain = unpadder.update(plain) + unpadder.finalize()
            return plain.decode('utf-8')
        except (InvalidTag, ValueError) as e:
            raise TamperError(f'Cannot decrypt value for profile "{name}"', profile=name, original_error=e) from e
