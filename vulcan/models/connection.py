"""Connection Descriptor Pydantic Model.

Identifies a target database: engine, host, port, credentials and database name.
Serialized with camelCase field names (``engineType``) to match the encrypted
``connectionInfo`` URL parameter format.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Engine(str, Enum):
  """Supported database engines."""
  MYSQL = 'MYSQL'
  POSTGRESQL = 'POSTGRESQL'


REQUIRED_FIELDS = ('engine_type', 'host', 'username', 'port')


class ConnectionDescriptor(BaseModel):
  """Database connection descriptor.

  Attributes:
      id: Client-side connection id (optional)
      title: Display name (optional)
      engine_type: Database engine
      host: Database host
      port: Database port, kept as a string like the original wire format
      username: Database user
      password: Database password (may be empty)
      database: Database name; empty string when unset
  """

  id: str | None = Field(default=None, description='Client-side connection id')
  title: str | None = Field(default=None, description='Display name')
  engine_type: Engine = Field(..., alias='engineType', description='Database engine')
  host: str = Field(..., min_length=1, description='Database host')
  port: str = Field(..., min_length=1, description='Database port')
  username: str = Field(..., min_length=1, description='Database user')
  password: str = Field(default='', description='Database password')
  database: str = Field(default='', description='Database name')

  @field_validator('port', mode='before')
  @classmethod
  def coerce_port(cls, v: Any) -> Any:
    """Accept numeric ports and store them as strings."""
    if isinstance(v, int) and not isinstance(v, bool):
      return str(v)
    return v

  @field_validator('password', 'database', mode='before')
  @classmethod
  def none_to_empty(cls, v: Any) -> Any:
    return '' if v is None else v

  @property
  def connection_key(self) -> str:
    """Stable key identifying this connection (used to share Vulcan instances)."""
    return json.dumps(self.to_wire(), sort_keys=True)

  def to_wire(self) -> dict[str, Any]:
    """camelCase dict as embedded in encrypted URLs and request bodies."""
    return self.model_dump(by_alias=True, exclude_none=True, mode='json')

  def redacted(self) -> dict[str, Any]:
    """Wire dict safe for logs."""
    data = self.to_wire()
    data['password'] = '[REDACTED]'
    return data

  model_config = {
    'populate_by_name': True,
    'json_schema_extra': {
      'example': {
        'engineType': 'POSTGRESQL',
        'host': 'localhost',
        'port': '5432',
        'username': 'app',
        'password': 'secret',
        'database': 'shop',
      }
    },
  }


def missing_connection_fields(data: dict[str, Any]) -> list[str]:
  """Names of required connection fields absent from a raw wire dict."""
  wire_names = {'engine_type': 'engineType'}
  missing = []
  for name in REQUIRED_FIELDS:
    wire_name = wire_names.get(name, name)
    if not data.get(wire_name) and not data.get(name):
      missing.append(wire_name)
  return missing
