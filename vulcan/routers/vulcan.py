"""Vulcan Router.

Registers SQL templates as APIs and dispatches calls to the per-connection
Vulcan router tables.
"""

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from vulcan.lib.errors import (
  ConfigurationError,
  InvalidConnectionError,
  VulcanError,
  to_http_exception,
)
from vulcan.lib.structured_logger import StructuredLogger
from vulcan.models.connection import ConnectionDescriptor
from vulcan.models.endpoint import HttpMethod
from vulcan.services.api_repository import JsonFileAPIRepository, get_api_repository
from vulcan.services.publish_service import PublishService
from vulcan.services.sql_query_service import decode_connection
from vulcan.services.vulcan_service import VulcanRegistry, VulcanRequest, get_vulcan_registry

router = APIRouter()
logger = StructuredLogger(__name__)

ACTIONS = {method.value.lower() for method in HttpMethod}


class RegisterAPIRequest(BaseModel):
  """Request body for publishing a SQL API."""
  name: str | None = Field(default=None, description='API display name')
  description: str | None = Field(default=None, description='Free-form description')
  connection: dict[str, Any] | None = Field(default=None, description='Connection descriptor')
  table_name: str | None = Field(default=None, alias='tableName', description='Table segment of the URL')
  sql_query: str | None = Field(default=None, alias='sqlQuery', description='SQL template')
  database: str | None = Field(default=None, description='Database used when the connection has none')

  model_config = {'populate_by_name': True}


class RegisterEndpointRequest(BaseModel):
  """Request body for registering SQL on a connection without publishing."""
  connection: dict[str, Any] | None = Field(default=None, description='Connection descriptor')
  sql: str | None = Field(default=None, description='SQL template')


def get_publish_service(
  repository: JsonFileAPIRepository = Depends(get_api_repository),
  registry: VulcanRegistry = Depends(get_vulcan_registry),
) -> PublishService:
  return PublishService(repository=repository, registry=registry)


def _parse_connection(raw: dict[str, Any] | None) -> ConnectionDescriptor:
  if not raw:
    raise InvalidConnectionError('Connection configuration is required')
  try:
    return ConnectionDescriptor.model_validate(raw)
  except ValidationError as e:
    raise InvalidConnectionError(f'Invalid connection configuration: {e.error_count()} validation error(s)') from e


async def _request_body(request: Request) -> dict[str, Any] | None:
  if not await request.body():
    return None
  try:
    body = await request.json()
  except (json.JSONDecodeError, UnicodeDecodeError):
    raise HTTPException(
      status_code=400,
      detail={'error_code': 'INVALID_REQUEST', 'message': 'Request body must be JSON'},
    )
  return body if isinstance(body, dict) else None


def _resolve_connection(request: Request, body: dict[str, Any] | None) -> ConnectionDescriptor:
  """Connection from the encrypted ``connectionInfo`` query param or body ``connection``."""
  connection_info = request.query_params.get('connectionInfo')
  if connection_info:
    return decode_connection(connection_info)
  return _parse_connection((body or {}).get('connection'))


@router.post('/register')
async def register_api(
  request: RegisterAPIRequest,
  service: PublishService = Depends(get_publish_service),
):
  """Publish a SQL template as a GET-callable URL.

  Request Body:
      name, connection, tableName, sqlQuery (required); description, database

  Returns:
      message, api record and documentation (url, parameters)

  Raises:
      400: Missing fields or connection cannot be validated
      503: Connection encryption not configured
  """
  if not request.connection or not request.sql_query or not request.table_name or not request.name:
    raise HTTPException(
      status_code=400,
      detail={
        'error_code': 'MISSING_FIELDS',
        'message': 'Name, connection, SQL query and table name are required',
      },
    )

  try:
    connection = _parse_connection(request.connection)
    return await service.publish(
      name=request.name,
      connection=connection,
      table_name=request.table_name,
      sql_query=request.sql_query,
      database=request.database,
      description=request.description,
    )

  except (InvalidConnectionError, ConfigurationError) as e:
    logger.warning(f'API registration rejected: {e.message}', table_name=request.table_name)
    raise to_http_exception(e)

  except Exception as e:
    logger.error(f'API registration failed: {e}', exc_info=True, table_name=request.table_name)
    raise HTTPException(
      status_code=500,
      detail={
        'error_code': 'REGISTRATION_FAILED',
        'message': 'Failed to register API',
        'technical_details': {'error_type': type(e).__name__},
      },
    )


@router.get('/swagger')
async def swagger_docs(
  connection: str | None = None,
  registry: VulcanRegistry = Depends(get_vulcan_registry),
):
  """OpenAPI document for the APIs registered on a connection.

  Query Parameters:
      connection: Connection descriptor as JSON

  Raises:
      400: connection missing or invalid
      404: Nothing registered for this connection
  """
  if not connection:
    raise to_http_exception(InvalidConnectionError('Connection configuration is required'))
  try:
    descriptor = _parse_connection(json.loads(connection))
  except json.JSONDecodeError:
    raise to_http_exception(InvalidConnectionError('Connection configuration must be JSON'))
  except InvalidConnectionError as e:
    raise to_http_exception(e)

  vulcan = registry.get(descriptor)
  if vulcan is None:
    raise HTTPException(
      status_code=404,
      detail={'error_code': 'NOT_FOUND', 'message': 'No API found for this connection'},
    )
  return vulcan.get_swagger_docs()


@router.api_route('/execute/{path:path}', methods=['GET', 'POST', 'PUT', 'DELETE'])
async def execute_endpoint(
  path: str,
  request: Request,
  registry: VulcanRegistry = Depends(get_vulcan_registry),
):
  """Dispatch a call to the connection's registered endpoints.

  ``/api/vulcan/execute/users`` is routed as ``/api/users``.

  Raises:
      400: Connection missing or invalid
      404: Nothing registered for this connection, or no router for the path
      405: No endpoint for the method
  """
  body = await _request_body(request)
  try:
    connection = _resolve_connection(request, body)
  except VulcanError as e:
    raise to_http_exception(e)

  vulcan = registry.get(connection)
  if vulcan is None:
    raise HTTPException(
      status_code=404,
      detail={'error_code': 'NOT_FOUND', 'message': 'No API found for this connection'},
    )

  if body:
    body = {k: v for k, v in body.items() if k != 'connection'}

  response = await vulcan.handle_request(VulcanRequest(
    method=request.method,
    path=f'/api/{path}',
    query=dict(request.query_params),
    body=body,
  ))
  return JSONResponse(status_code=response.status_code, content=jsonable_encoder(response.body))


@router.post('/{table}/{action}')
async def table_action(
  table: str,
  action: str,
  request: Request,
  service: PublishService = Depends(get_publish_service),
  registry: VulcanRegistry = Depends(get_vulcan_registry),
):
  """Register SQL for a table, or call its endpoint by method name.

  ``action`` is ``register`` (body: connection, sql) or one of
  ``get|post|put|delete`` (body: connection plus parameter values).

  Raises:
      400: Connection missing or invalid, or unknown action
  """
  body = await _request_body(request) or {}
  try:
    connection = _resolve_connection(request, body)
  except VulcanError as e:
    raise to_http_exception(e)

  if action == 'register':
    register = RegisterEndpointRequest.model_validate(body)
    if not register.sql:
      raise HTTPException(
        status_code=400,
        detail={'error_code': 'INVALID_REQUEST', 'message': 'SQL is required'},
      )
    return service.register_endpoint(connection, table, register.sql)

  if action not in ACTIONS:
    raise HTTPException(
      status_code=400,
      detail={'error_code': 'INVALID_REQUEST', 'message': 'Invalid action'},
    )

  # Parameter values travel in the POST body whatever the endpoint's method
  params = {k: v for k, v in body.items() if k != 'connection'}
  vulcan = registry.get_or_create(connection, repository=service.repository)
  response = await vulcan.handle_request(VulcanRequest(
    method=action.upper(),
    path=f'/api/{table}',
    query={**dict(request.query_params), **params},
    body=params,
  ))
  return JSONResponse(status_code=response.status_code, content=jsonable_encoder(response.body))
