"""Connection descriptor encryption.

Wire format (compatible with URLs published before the key moved out of the
source tree): ``base64(IV || AES-256-CBC(PKCS7(plaintext)))`` with a random
16-byte IV and ``key = SHA-256(passphrase)``.

The passphrase comes from ``VULCAN_ENCRYPTION_KEY``. Rotating it: move the old
value into ``VULCAN_ENCRYPTION_KEY_PREVIOUS`` (comma separated) and set a new
``VULCAN_ENCRYPTION_KEY``. New URLs use the new key; old URLs keep decrypting
until the previous key is removed.
"""

import base64
import binascii
import hashlib
import json
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from vulcan.lib.config import Settings, get_settings
from vulcan.lib.errors import ConfigurationError, InvalidConnectionError
from vulcan.lib.structured_logger import StructuredLogger

logger = StructuredLogger(__name__)

IV_LENGTH = 16
BLOCK_SIZE_BITS = algorithms.AES.block_size


def derive_key(passphrase: str) -> bytes:
  """SHA-256 of the passphrase, giving a 32-byte AES-256 key."""
  return hashlib.sha256(passphrase.encode('utf-8')).digest()


def _current_key(settings: Settings) -> bytes:
  if not settings.is_encryption_configured:
    raise ConfigurationError(
      'Connection encryption is not configured. Set VULCAN_ENCRYPTION_KEY.'
    )
  return derive_key(settings.encryption_key)


def normalize_connection_json(text: str) -> str:
  """Validate that text is a JSON object and default its database to ''.

  Raises:
      InvalidConnectionError: If text is not a JSON object string
  """
  if not isinstance(text, str):
    raise InvalidConnectionError('Input must be a string')
  try:
    parsed = json.loads(text)
  except json.JSONDecodeError as e:
    raise InvalidConnectionError('Input must be a valid JSON string') from e
  if not isinstance(parsed, dict):
    raise InvalidConnectionError('Input must be a JSON object')
  if parsed.get('database') is None:
    parsed['database'] = ''
  return json.dumps(parsed)


def encrypt(text: str, settings: Settings | None = None) -> str:
  """Encrypt a connection descriptor JSON string.

  Args:
      text: JSON object string describing the connection
      settings: Settings to take the key from (defaults to environment)

  Returns:
      base64 blob of IV followed by ciphertext

  Raises:
      InvalidConnectionError: If text is not a JSON object string
      ConfigurationError: If no encryption key is configured
  """
  settings = settings or get_settings()
  key = _current_key(settings)
  plaintext = normalize_connection_json(text).encode('utf-8')

  iv = os.urandom(IV_LENGTH)
  padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
  padded = padder.update(plaintext) + padder.finalize()

  encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
  ciphertext = encryptor.update(padded) + encryptor.finalize()

  return base64.b64encode(iv + ciphertext).decode('ascii')


def _decrypt_with_key(raw: bytes, key: bytes) -> str:
  iv, ciphertext = raw[:IV_LENGTH], raw[IV_LENGTH:]
  decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
  padded = decryptor.update(ciphertext) + decryptor.finalize()
  unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
  plaintext = unpadder.update(padded) + unpadder.finalize()
  return plaintext.decode('utf-8')


def decrypt(blob: str, settings: Settings | None = None) -> str:
  """Decrypt a blob produced by ``encrypt``.

  The current key is tried first, then each previous key in order.

  Raises:
      InvalidConnectionError: If the blob is malformed or no key decrypts it
      ConfigurationError: If no encryption key is configured
  """
  settings = settings or get_settings()
  keys = [_current_key(settings)] + [derive_key(k) for k in settings.previous_encryption_keys]

  try:
    raw = base64.b64decode(blob, validate=False)
  except (binascii.Error, ValueError) as e:
    raise InvalidConnectionError('Connection info is not valid base64') from e

  if len(raw) <= IV_LENGTH or (len(raw) - IV_LENGTH) % IV_LENGTH:
    raise InvalidConnectionError('Connection info has an invalid length')

  for index, key in enumerate(keys):
    try:
      plaintext = _decrypt_with_key(raw, key)
    except (ValueError, UnicodeDecodeError):
      continue
    if index > 0:
      logger.warning('Connection info decrypted with a retired key', key_index=index)
    return plaintext

  raise InvalidConnectionError('Failed to decrypt connection information')
