"""Environment-backed configuration.

Values are read from the process environment after ``.env`` and
``.env.local`` are loaded with python-dotenv. Settings are re-read on every
``get_settings()`` call so tests can monkeypatch the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_STATE_FILE = 'server-state.json'
DEFAULT_CORS_ORIGINS = (
  'http://localhost:5173',
  'http://127.0.0.1:5173',
  'http://localhost:3000',
  'http://127.0.0.1:3000',
)


def load_env_files(*filepaths: str) -> None:
  """Load environment variables from dotenv files that exist.

  Later files do not override variables already set in the environment.
  """
  for filepath in filepaths:
    if Path(filepath).exists():
      load_dotenv(filepath, override=False)


def _split_csv(raw: str | None) -> list[str]:
  if not raw:
    return []
  return [item.strip() for item in raw.split(',') if item.strip()]


@dataclass(frozen=True)
class Settings:
  """Runtime settings for the service.

  Attributes:
      encryption_key: Passphrase the AES key is derived from (VULCAN_ENCRYPTION_KEY)
      previous_encryption_keys: Retired passphrases still accepted on decrypt
      state_file: Path of the JSON file holding published APIs
      public_base_url: Prefix for generated API URLs ('' keeps them relative)
      log_level: Logging level name
      cors_allow_origins: Origins allowed by the CORS middleware
  """

  encryption_key: str | None = None
  previous_encryption_keys: list[str] = field(default_factory=list)
  state_file: Path = Path(DEFAULT_STATE_FILE)
  public_base_url: str = ''
  log_level: str = 'INFO'
  cors_allow_origins: list[str] = field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

  @property
  def is_encryption_configured(self) -> bool:
    return bool(self.encryption_key)


def get_settings() -> Settings:
  """Build settings from the current environment."""
  state_file = os.getenv('VULCAN_STATE_FILE') or os.path.join(os.getcwd(), DEFAULT_STATE_FILE)
  return Settings(
    encryption_key=os.getenv('VULCAN_ENCRYPTION_KEY') or None,
    previous_encryption_keys=_split_csv(os.getenv('VULCAN_ENCRYPTION_KEY_PREVIOUS')),
    state_file=Path(state_file),
    public_base_url=os.getenv('VULCAN_PUBLIC_BASE_URL', '').rstrip('/'),
    log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    cors_allow_origins=_split_csv(os.getenv('CORS_ALLOW_ORIGINS')) or list(DEFAULT_CORS_ORIGINS),
  )
