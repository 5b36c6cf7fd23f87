"""Published API Pydantic Models.

A published API is a persisted record exposing a SQL template as a callable
URL, together with its call metrics. Records are stored in the JSON state
file with camelCase keys (``sqlQuery``, ``successCalls``...).
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from vulcan.models.endpoint import HttpMethod


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


class APIStatus(str, Enum):
  """Whether a published API accepts calls."""
  ACTIVE = 'active'
  INACTIVE = 'inactive'


class APIMetrics(BaseModel):
  """Call metrics for a published API.

  ``total_calls`` is always derived from ``success_calls + failed_calls``.
  """

  total_calls: int = Field(default=0, ge=0, alias='totalCalls')
  success_calls: int = Field(default=0, ge=0, alias='successCalls')
  failed_calls: int = Field(default=0, ge=0, alias='failedCalls')
  average_response_time: float = Field(default=0.0, ge=0, alias='averageResponseTime')
  current_concurrent_calls: int = Field(default=0, ge=0, alias='currentConcurrentCalls')
  max_concurrent_calls: int = Field(default=0, ge=0, alias='maxConcurrentCalls')
  last_called_at: datetime | None = Field(default=None, alias='lastCalledAt')

  @model_validator(mode='after')
  def derive_total_calls(self) -> 'APIMetrics':
    """Keep totalCalls == successCalls + failedCalls."""
    self.total_calls = self.success_calls + self.failed_calls
    return self

  model_config = {'populate_by_name': True}


class PublishedAPI(BaseModel):
  """Persisted published API record."""

  id: str = Field(default_factory=lambda: str(uuid4()), description='Record UUID')
  name: str = Field(..., min_length=1, description='Display name')
  url: str = Field(..., min_length=1, description='Callable URL')
  method: HttpMethod = Field(default=HttpMethod.GET, description='HTTP method')
  connection_id: str = Field(..., min_length=1, alias='connectionId', description='Connection key')
  table_name: str = Field(default='', alias='tableName', description='Target table')
  sql_query: str = Field(..., min_length=1, alias='sqlQuery', description='SQL template')
  database: str | None = Field(default=None, description='Database name')
  description: str | None = Field(default=None, description='Free-form description')
  created_at: datetime = Field(default_factory=utcnow, alias='createdAt')
  status: APIStatus = Field(default=APIStatus.ACTIVE)
  metrics: APIMetrics = Field(default_factory=APIMetrics)

  def to_wire(self) -> dict[str, Any]:
    """camelCase JSON-safe dict as stored on disk and returned over HTTP."""
    return self.model_dump(by_alias=True, mode='json')

  model_config = {
    'populate_by_name': True,
    'json_schema_extra': {
      'example': {
        'id': '1b4e28ba-2fa1-11d2-883f-0016d3cca427',
        'name': 'Users by id',
        'url': '/api/sql/users?connectionInfo=...&query=SELECT%20*%20FROM%20users',
        'method': 'GET',
        'connectionId': '{"engineType": "POSTGRESQL", ...}',
        'tableName': 'users',
        'sqlQuery': 'SELECT * FROM users WHERE id = 5',
        'database': 'shop',
        'createdAt': '2025-10-05T12:00:00Z',
        'status': 'active',
        'metrics': {
          'totalCalls': 0,
          'successCalls': 0,
          'failedCalls': 0,
          'averageResponseTime': 0,
          'currentConcurrentCalls': 0,
          'maxConcurrentCalls': 0,
        },
      }
    },
  }
