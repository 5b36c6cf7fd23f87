"""SQL API Router.

Serves published SQL APIs at ``/api/sql/{table}`` and exposes the SQL
analyzer at ``/api/sql-to-api``.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from vulcan.lib.errors import (
  ExecutionError,
  MethodNotAllowedError,
  ParameterValidationError,
  VulcanError,
  to_http_exception,
)
from vulcan.lib.structured_logger import StructuredLogger
from vulcan.services.api_repository import JsonFileAPIRepository, get_api_repository
from vulcan.services.sql_analyzer import HeuristicSqlAnalyzer
from vulcan.services.sql_query_service import SqlQueryService

router = APIRouter()
logger = StructuredLogger(__name__)

analyzer = HeuristicSqlAnalyzer()


class SqlToApiRequest(BaseModel):
  """Request body for analyzing SQL."""
  sql: str | None = Field(default=None, description='Raw SQL statement')


def get_sql_query_service(
  repository: JsonFileAPIRepository = Depends(get_api_repository),
) -> SqlQueryService:
  return SqlQueryService(repository=repository, analyzer=analyzer)


@router.post('/sql-to-api')
async def sql_to_api(request: SqlToApiRequest):
  """Analyze SQL into an endpoint definition with documentation.

  Raises:
      400: sql missing
  """
  if not request.sql:
    raise HTTPException(
      status_code=400,
      detail={'error_code': 'INVALID_REQUEST', 'message': 'SQL query is required'},
    )

  endpoint = analyzer.parse(request.sql)
  return {
    'success': True,
    'endpoint': endpoint.model_dump(mode='json'),
    'documentation': analyzer.describe(endpoint),
  }


@router.get('/sql/{table}')
async def execute_published_sql(
  table: str,
  request: Request,
  service: SqlQueryService = Depends(get_sql_query_service),
):
  """Execute a published SQL API.

  Query Parameters:
      connectionInfo: Encrypted connection descriptor
      query: URL-encoded SQL template (must equal the published one)
      apiId: Published API id (optional)
      <param>: Values for the WHERE-clause parameters

  Returns:
      Result rows as a JSON array

  Raises:
      400: Invalid connection info or missing parameter
      403: API inactive
      404: No matching published API
      500: Query execution failed
      503: Connection encryption not configured
  """
  query_params = dict(request.query_params)

  try:
    return await service.execute(
      table_name=table,
      connection_info=query_params.get('connectionInfo'),
      query=query_params.get('query'),
      request_query=query_params,
      api_id=query_params.get('apiId'),
    )

  except ParameterValidationError as e:
    logger.warning(f'Parameter validation failed: {e.message}', table_name=table)
    raise to_http_exception(e)

  except ExecutionError as e:
    raise HTTPException(
      status_code=500,
      detail={'error_code': e.error_code, 'message': 'Query execution failed', 'details': e.message},
    )

  except VulcanError as e:
    logger.warning(f'Request rejected: {e.message}', table_name=table, error_code=e.error_code)
    raise to_http_exception(e)

  except Exception as e:
    logger.error(f'Error processing request: {e}', exc_info=True, table_name=table)
    raise HTTPException(
      status_code=500,
      detail={
        'error_code': 'INTERNAL_ERROR',
        'message': 'Internal server error',
        'technical_details': {'error_type': type(e).__name__},
      },
    )


@router.api_route('/sql/{table}', methods=['POST', 'PUT', 'DELETE', 'PATCH'], include_in_schema=False)
async def published_sql_method_not_allowed(table: str, request: Request):
  """Published SQL APIs are GET-only."""
  raise to_http_exception(
    MethodNotAllowedError(f'Method {request.method} Not Allowed', allowed=['GET'])
  )
