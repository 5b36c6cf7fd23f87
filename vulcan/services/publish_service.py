"""Publish Service

Publishes a SQL template as a callable URL: validates the target connection,
registers the SQL on the connection's Vulcan instance, encrypts the connection
descriptor into the URL and persists a PublishedAPI record.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable
from urllib.parse import quote

from vulcan.lib.config import Settings, get_settings
from vulcan.lib.database import ping_connection_async
from vulcan.lib.encryption import encrypt
from vulcan.lib.errors import InvalidConnectionError
from vulcan.lib.structured_logger import StructuredLogger
from vulcan.models.connection import ConnectionDescriptor
from vulcan.models.published_api import PublishedAPI
from vulcan.services.api_repository import APIRepository
from vulcan.services.vulcan_service import VulcanRegistry

logger = StructuredLogger(__name__)

ConnectionChecker = Callable[[ConnectionDescriptor], Awaitable[bool]]


def build_sql_api_url(
  connection: ConnectionDescriptor,
  table_name: str,
  sql: str,
  base_url: str = '',
  settings: Settings | None = None,
) -> str:
  """Callable GET URL embedding the encrypted connection and the SQL.

  Shape: ``<base>/api/sql/<table>?connectionInfo=<enc>&query=<sql>``, both
  values URL-encoded.
  """
  connection_info = quote(encrypt(json.dumps(connection.to_wire()), settings=settings), safe='')
  encoded_query = quote(sql, safe='')
  return f'{base_url}/api/sql/{table_name}?connectionInfo={connection_info}&query={encoded_query}'


class PublishService:
  """Service for publishing SQL templates as APIs."""

  def __init__(
    self,
    repository: APIRepository,
    registry: VulcanRegistry,
    settings: Settings | None = None,
    connection_checker: ConnectionChecker | None = None,
  ):
    self.repository = repository
    self.registry = registry
    self.settings = settings or get_settings()
    self.connection_checker = connection_checker or ping_connection_async

  async def publish(
    self,
    name: str,
    connection: ConnectionDescriptor,
    table_name: str,
    sql_query: str,
    database: str | None = None,
    description: str | None = None,
  ) -> dict[str, Any]:
    """Register sql_query and persist a PublishedAPI for it.

    Args:
        name: Display name of the API
        connection: Target database
        table_name: Table segment of the generated URL
        sql_query: SQL template
        database: Database to use when the connection has none
        description: Optional free-form description

    Returns:
        Dict with message, api record and documentation

    Raises:
        InvalidConnectionError: If the database cannot be reached
        ConfigurationError: If connection encryption is not configured
    """
    if not connection.database and database:
      connection = connection.model_copy(update={'database': database})

    if not await self.connection_checker(connection):
      raise InvalidConnectionError('Failed to validate database connection')

    vulcan = self.registry.get_or_create(connection, repository=self.repository)
    endpoint = vulcan.add_sql(sql_query)

    url = build_sql_api_url(connection, table_name, sql_query, settings=self.settings)

    api: PublishedAPI = await asyncio.to_thread(self.repository.add_api, {
      'name': name,
      'description': description,
      'url': url,
      'method': 'GET',
      'sqlQuery': sql_query,
      'connectionId': connection.connection_key,
      'tableName': table_name,
      'database': database or connection.database or None,
    })

    logger.info(
      'SQL API registered',
      api_id=api.id,
      table_name=table_name,
      endpoint_path=endpoint.path,
      endpoint_method=endpoint.method.value,
    )

    base_url = self.settings.public_base_url
    return {
      'message': 'SQL API registered successfully',
      'api': api.to_wire(),
      'documentation': {
        'url': f'{base_url}{url}',
        'callUrl': f'{base_url}{url}&apiId={api.id}',
        'method': 'GET',
        'description': description or 'No description provided',
        'parameters': {
          'connectionInfo': 'Connection information (encrypted)',
          'query': 'SQL query (URL encoded)',
          'apiId': 'Published API id (optional, selects the API record directly)',
          **{param.name: f'{param.type.value} (required)' for param in endpoint.params},
        },
      },
    }

  def register_endpoint(self, connection: ConnectionDescriptor, table: str, sql: str) -> dict[str, Any]:
    """Register sql on the connection's Vulcan without persisting a record."""
    vulcan = self.registry.get_or_create(connection, repository=self.repository)
    endpoint = vulcan.add_sql(sql)
    action = endpoint.method.value.lower()
    query = '&'.join(f'{p.name}=value' for p in endpoint.params)
    return {
      'message': 'SQL API registered successfully',
      'endpoint': endpoint.model_dump(mode='json'),
      'documentation': {
        'url': f'/api/vulcan/{table}/{action}',
        'method': endpoint.method.value,
        'parameters': [p.model_dump(mode='json') for p in endpoint.params],
        'example': {
          'curl': (
            f'curl -X {endpoint.method.value} '
            f'{self.settings.public_base_url or "http://your-domain"}/api/vulcan/{table}/{action}'
            + (f'?{query}' if query else '')
          ),
        },
      },
    }
