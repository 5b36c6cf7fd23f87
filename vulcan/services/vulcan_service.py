"""Vulcan Service

Routes requests to SQL endpoints registered for one database connection.

A ``Vulcan`` instance owns a list of ``VulcanRouter`` objects, one per
distinct path, each holding at most one endpoint per HTTP method. Lookup is a
linear scan: the first router whose path is a prefix of the request path wins,
so a router registered for ``/api/user`` also answers ``/api/users`` if it
was registered first. ``VulcanRegistry`` shares one instance per connection.
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from vulcan.lib.errors import ParameterValidationError
from vulcan.lib.structured_logger import StructuredLogger, log_event
from vulcan.models.connection import ConnectionDescriptor
from vulcan.models.endpoint import SQLEndpoint
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


class InvocationState(str, Enum):
  """Lifecycle of one endpoint invocation. SUCCEEDED and FAILED are terminal."""
  RECEIVED = 'RECEIVED'
  VALIDATING = 'VALIDATING'
  EXECUTING = 'EXECUTING'
  SUCCEEDED = 'SUCCEEDED'
  FAILED = 'FAILED'


@dataclass
class VulcanRequest:
  """Transport-independent request handed to ``Vulcan.handle_request``."""

  method: str
  path: str
  query: dict[str, Any] = field(default_factory=dict)
  body: dict[str, Any] | None = None
  path_params: dict[str, Any] = field(default_factory=dict)
  api_id: str | None = None

  def __post_init__(self):
    self.method = self.method.upper()
    if self.api_id is None:
      self.api_id = self.query.get('apiId') or (self.body or {}).get('apiId') or None


@dataclass
class VulcanResponse:
  """Status code and JSON-serializable body, plus the final invocation state."""

  status_code: int
  body: Any
  state: InvocationState


class VulcanRouter:
  """Endpoints sharing one path."""

  def __init__(self, path: str):
    self.path = path
    self.endpoints: list[SQLEndpoint] = []

  def matches(self, request_path: str) -> bool:
    return request_path.startswith(self.path)

  def find_endpoint(self, method: str) -> SQLEndpoint | None:
    method = method.upper()
    return next((e for e in self.endpoints if e.method.value == method), None)

  def add(self, endpoint: SQLEndpoint) -> bool:
    """Add endpoint, replacing one with the same method.

    Returns:
        True if an existing endpoint was replaced
    """
    for index, existing in enumerate(self.endpoints):
      if existing.method == endpoint.method:
        self.endpoints[index] = endpoint
        return True
    self.endpoints.append(endpoint)
    return False


class Vulcan:
  """Router table and executor for one database connection.

  Usage:
      vulcan = Vulcan(connection, repository=repository)
      endpoint = vulcan.add_sql('SELECT * FROM users WHERE id = 5')
      response = await vulcan.handle_request(
          VulcanRequest(method='GET', path='/api/users', query={'id': '7'})
      )
  """

  def __init__(
    self,
    connection: ConnectionDescriptor,
    repository: APIRepository | None = None,
    executor: SqlExecutor | None = None,
    analyzer: SqlAnalyzer | None = None,
    enable_swagger: bool = True,
  ):
    self.connection = connection
    self.repository = repository
    self.executor = executor or default_executor
    self.analyzer = analyzer or HeuristicSqlAnalyzer()
    self.enable_swagger = enable_swagger
    self.routers: list[VulcanRouter] = []
    self._lock = threading.Lock()

  @property
  def endpoints(self) -> list[SQLEndpoint]:
    return [endpoint for router in self.routers for endpoint in router.endpoints]

  def add_endpoint(self, endpoint: SQLEndpoint) -> SQLEndpoint:
    """Register endpoint under the router for its path, creating one if needed."""
    with self._lock:
      router = next((r for r in self.routers if r.path == endpoint.path), None)
      if router is None:
        router = VulcanRouter(endpoint.path)
        self.routers.append(router)
      replaced = router.add(endpoint)

    if replaced:
      logger.warning(
        'Endpoint re-registered, previous SQL replaced',
        path=endpoint.path,
        method=endpoint.method.value,
      )
    log_event('vulcan.endpoint_registered', context={
      'path': endpoint.path,
      'method': endpoint.method.value,
      'param_count': len(endpoint.params),
      'replaced': replaced,
    })
    return endpoint

  def add_sql(self, sql: str) -> SQLEndpoint:
    """Analyze sql and register the resulting endpoint."""
    return self.add_endpoint(self.analyzer.parse(sql))

  def find_router(self, path: str) -> VulcanRouter | None:
    request_path = path.split('?', 1)[0]
    return next((r for r in self.routers if r.matches(request_path)), None)

  async def handle_request(self, request: VulcanRequest) -> VulcanResponse:
    """Route, validate, execute and account for one request.

    Validation failures return 400 before any metrics are touched. Execution
    errors of any kind return a generic 500 and count as failed calls.
    """
    request_path = request.path.split('?', 1)[0]

    router = self.find_router(request_path)
    if router is None:
      return VulcanResponse(
        404,
        {'error': 'Not found', 'message': f'No API registered for path {request_path}'},
        InvocationState.FAILED,
      )

    endpoint = router.find_endpoint(request.method)
    if endpoint is None:
      return VulcanResponse(
        405,
        {
          'error': 'Method not allowed',
          'message': f'{request.method} is not supported on {router.path}',
          'allowed': [e.method.value for e in router.endpoints],
        },
        InvocationState.FAILED,
      )

    try:
      values = bind_parameters(endpoint, BoundRequest(
        method=request.method,
        query=request.query,
        body=request.body,
        path_params=request.path_params,
      ))
    except ParameterValidationError as e:
      return VulcanResponse(
        400,
        {'error': 'Invalid parameters', 'message': e.message, 'parameter': e.parameter},
        InvocationState.FAILED,
      )

    sql = render_sql(endpoint, values)

    async def execute():
      return await self.executor(self.connection, sql)

    try:
      if self.repository is not None:
        rows = await run_tracked(self.repository, request.api_id, execute)
      else:
        rows = await execute()
    except Exception as e:
      logger.error(
        f'Endpoint execution failed: {e}',
        exc_info=True,
        path=endpoint.path,
        method=endpoint.method.value,
        api_id=request.api_id,
      )
      return VulcanResponse(
        500,
        {'error': 'Internal server error', 'message': 'Failed to execute query'},
        InvocationState.FAILED,
      )

    return VulcanResponse(200, rows, InvocationState.SUCCEEDED)

  def get_swagger_docs(self) -> dict[str, Any]:
    """OpenAPI 3 document describing every registered endpoint."""
    if not self.enable_swagger:
      return {}

    paths: dict[str, Any] = {}
    for router in self.routers:
      operations = {}
      for endpoint in router.endpoints:
        operations[endpoint.method.value.lower()] = {
          'summary': endpoint.sql,
          'parameters': [
            {
              'name': param.name,
              'in': param.location.value,
              'required': param.required,
              'schema': {'type': param.type.value},
            }
            for param in endpoint.params
          ],
          'responses': {
            '200': {
              'description': 'Query result rows',
              'content': {'application/json': {'schema': {'type': 'array', 'items': {'type': 'object'}}}},
            },
            '400': {'description': 'Missing or invalid parameter'},
            '404': {'description': 'No endpoint for path'},
            '405': {'description': 'Method not allowed'},
            '500': {'description': 'Query execution failed'},
          },
        }
      paths[router.path] = operations

    return {
      'openapi': '3.0.0',
      'info': {
        'title': f'SQL APIs for {self.connection.database or self.connection.host}',
        'version': '1.0.0',
      },
      'paths': paths,
    }


class VulcanRegistry:
  """One Vulcan instance per connection descriptor, shared across requests."""

  def __init__(self):
    self._instances: dict[str, Vulcan] = {}
    self._lock = threading.Lock()

  def get(self, connection: ConnectionDescriptor) -> Vulcan | None:
    with self._lock:
      return self._instances.get(connection.connection_key)

  def get_or_create(self, connection: ConnectionDescriptor, repository: APIRepository | None = None) -> Vulcan:
    with self._lock:
      key = connection.connection_key
      vulcan = self._instances.get(key)
      if vulcan is None:
        vulcan = Vulcan(connection, repository=repository)
        self._instances[key] = vulcan
      elif repository is not None and vulcan.repository is None:
        vulcan.repository = repository
      return vulcan

  def clear(self) -> None:
    with self._lock:
      self._instances.clear()


_registry = VulcanRegistry()


def get_vulcan_registry() -> VulcanRegistry:
  """Process-wide registry (FastAPI dependency)."""
  return _registry
