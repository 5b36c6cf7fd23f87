"""SQL Query Service

Executes published APIs called through their generated URL
(``/api/sql/<table>?connectionInfo=...&query=...[&apiId=...]``).

Order of checks: API status, connection decoding, parameter binding, then
execution. Only the execution step is counted in the API's metrics.
"""

import asyncio
import json
from typing import Any

from pydantic import ValidationError

from vulcan.lib.encryption import decrypt
from vulcan.lib.errors import APIInactiveError, InvalidConnectionError, NotFoundError
from vulcan.lib.structured_logger import StructuredLogger
from vulcan.models.connection import ConnectionDescriptor, Engine, missing_connection_fields
from vulcan.models.published_api import APIStatus, PublishedAPI
from vulcan.services.api_repository import APIRepository
from vulcan.services.call_tracking import run_tracked
from vulcan.services.sql_analyzer import HeuristicSqlAnalyzer, SqlAnalyzer
from vulcan.services.sql_executor import (
  BoundRequest,
  SqlExecutor,
  bind_parameters,
  default_executor,
  render_sql,
)

logger = StructuredLogger(__name__)

# Query-string keys that belong to the URL scheme, never SQL parameters
RESERVED_QUERY_KEYS = frozenset({'connectionInfo', 'query', 'apiId'})


def decode_connection(connection_info: str) -> ConnectionDescriptor:
  """Decrypt and validate an encrypted connection descriptor.

  Raises:
      InvalidConnectionError: If decryption, parsing or validation fails
      ConfigurationError: If connection encryption is not configured
  """
  plaintext = decrypt(connection_info)
  try:
    data = json.loads(plaintext)
  except json.JSONDecodeError as e:
    raise InvalidConnectionError('Failed to decrypt or parse connection information') from e
  if not isinstance(data, dict):
    raise InvalidConnectionError('Failed to decrypt or parse connection information')

  if not data.get('database'):
    raise InvalidConnectionError(
      'Database name is required. Please specify a database in your connection settings.'
    )

  missing = missing_connection_fields(data)
  if missing:
    raise InvalidConnectionError(
      f"Missing required parameters: {', '.join(missing)}", missing_fields=missing
    )

  engine_type = data.get('engineType')
  if engine_type not in {engine.value for engine in Engine}:
    raise InvalidConnectionError(f'Invalid engine type: {engine_type}')

  try:
    connection = ConnectionDescriptor.model_validate(data)
  except ValidationError as e:
    raise InvalidConnectionError('Invalid connection information') from e

  logger.debug('Decrypted connection info', connection=connection.redacted())
  return connection


class SqlQueryService:
  """Runs published SQL APIs with status checks and metrics."""

  def __init__(
    self,
    repository: APIRepository,
    analyzer: SqlAnalyzer | None = None,
    executor: SqlExecutor | None = None,
  ):
    self.repository = repository
    self.analyzer = analyzer or HeuristicSqlAnalyzer()
    self.executor = executor or default_executor

  def resolve_api(self, request_path: str, api_id: str | None = None) -> PublishedAPI:
    """Find the active API a request targets.

    With an api_id only that record is considered. Otherwise APIs are
    matched by URL path and the first active one is used.

    Raises:
        NotFoundError: If no API matches
        APIInactiveError: If the matching API(s) are inactive
    """
    if api_id:
      api = self.repository.get_api(api_id)
      if api is None:
        raise NotFoundError(f'API with ID {api_id} not found', api_id=api_id)
      if api.status == APIStatus.INACTIVE:
        raise APIInactiveError(f'API {api_id} is currently inactive', api_id=api_id)
      return api

    matching = self.repository.find_apis_by_path(request_path)
    if not matching:
      raise NotFoundError('No matching API found for this URL', path=request_path)

    active = next((api for api in matching if api.status == APIStatus.ACTIVE), None)
    if active is None:
      raise APIInactiveError('All matching APIs for this URL are currently inactive')
    return active

  async def execute(
    self,
    table_name: str,
    connection_info: str | None,
    query: str | None,
    request_query: dict[str, Any],
    api_id: str | None = None,
  ) -> list[dict[str, Any]]:
    """Execute a published API.

    Args:
        table_name: Table segment of the URL (trailing ';' removed)
        connection_info: Encrypted connection descriptor
        query: SQL template from the URL; defaults to the stored template
        request_query: All query-string values of the request
        api_id: Optional published API id

    Returns:
        Result rows

    Raises:
        NotFoundError, APIInactiveError: From the status check
        InvalidConnectionError: If connection info is missing or invalid
        ParameterValidationError: If a required parameter is missing
        ExecutionError: If the query fails
    """
    table_name = table_name.replace(';', '')
    api = await asyncio.to_thread(self.resolve_api, f'/api/sql/{table_name}', api_id)

    sql_query = query or api.sql_query
    if sql_query.strip() != api.sql_query.strip():
      raise NotFoundError('API not found or unauthorized', api_id=api.id)

    if not connection_info:
      raise InvalidConnectionError('Missing connection information')
    connection = decode_connection(connection_info)

    endpoint = self.analyzer.parse(sql_query)
    params = {k: v for k, v in request_query.items() if k not in RESERVED_QUERY_KEYS}
    values = bind_parameters(endpoint, BoundRequest(method='GET', query=params))
    sql = render_sql(endpoint, values)

    logger.info(
      'Processing request for table',
      table_name=table_name,
      api_id=api.id,
      param_count=len(values),
    )

    async def execute():
      return await self.executor(connection, sql)

    return await run_tracked(self.repository, api.id, execute)
