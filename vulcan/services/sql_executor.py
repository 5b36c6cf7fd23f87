"""Request executor: parameter binding and SQL rendering.

Incoming request values are validated against an endpoint's declared
parameters, coerced to their declared types and substituted into the SQL
template as text. Only the first ``<name> <op> <literal>`` occurrence per
parameter is replaced; repeated conditions on the same column keep their
original literal.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from vulcan.lib.database import execute_sql_async
from vulcan.lib.errors import ParameterValidationError
from vulcan.models.connection import ConnectionDescriptor
from vulcan.models.endpoint import HttpMethod, ParamLocation, ParamType, SQLEndpoint, SQLParam

# Executes rendered SQL against a target database and returns rows
SqlExecutor = Callable[[ConnectionDescriptor, str], Awaitable[list[dict[str, Any]]]]

default_executor: SqlExecutor = execute_sql_async

LITERAL = r"(?:'[^']*'|\"[^\"]*\"|[^\s;)]+)"
OPERATOR = r'(>=|<=|!=|=|>|<|\bLIKE\b)'


@dataclass
class BoundRequest:
  """Request values an endpoint can draw parameters from."""

  method: str = HttpMethod.GET.value
  query: dict[str, Any] = field(default_factory=dict)
  body: dict[str, Any] | None = None
  path_params: dict[str, Any] = field(default_factory=dict)


def _lookup(param: SQLParam, request: BoundRequest) -> Any:
  body = request.body or {}
  if param.location == ParamLocation.BODY:
    return body.get(param.name)
  if param.location == ParamLocation.PATH:
    return request.path_params.get(param.name)
  # Query params fall back to the JSON body for non-GET requests
  value = request.query.get(param.name)
  if value is None and request.method.upper() != HttpMethod.GET.value:
    value = body.get(param.name)
  return value


def coerce_value(param: SQLParam, value: Any) -> Any:
  """Coerce a raw request value to the parameter's declared type.

  Raises:
      ParameterValidationError: If a number parameter is not numeric
  """
  if param.type == ParamType.NUMBER:
    if isinstance(value, bool):
      raise ParameterValidationError(f'Invalid number for parameter: {param.name}', param.name)
    if isinstance(value, (int, float)):
      return value
    try:
      number = float(str(value).strip())
    except ValueError as e:
      raise ParameterValidationError(
        f'Invalid number for parameter: {param.name}', param.name
      ) from e
    if number != number or number in (float('inf'), float('-inf')):
      raise ParameterValidationError(f'Invalid number for parameter: {param.name}', param.name)
    return int(number) if number.is_integer() else number
  if param.type == ParamType.BOOLEAN:
    if isinstance(value, bool):
      return value
    return str(value) == 'true'
  return str(value)


def bind_parameters(endpoint: SQLEndpoint, request: BoundRequest) -> dict[str, Any]:
  """Validate and coerce every declared parameter.

  Missing optional parameters are left out of the result, so their literal
  in the template stays untouched.

  Raises:
      ParameterValidationError: On the first missing required parameter
  """
  values: dict[str, Any] = {}
  for param in endpoint.params:
    raw = _lookup(param, request)
    if raw is None or raw == '':
      if param.required:
        raise ParameterValidationError(f'Missing required parameter: {param.name}', param.name)
      continue
    values[param.name] = coerce_value(param, raw)
  return values


def render_literal(value: Any) -> str:
  """SQL literal for a coerced value. Strings are single-quoted."""
  if isinstance(value, bool):
    return 'true' if value else 'false'
  if isinstance(value, (int, float)):
    return repr(value)
  return "'" + str(value).replace("'", "''") + "'"


def render_sql(endpoint: SQLEndpoint, values: dict[str, Any]) -> str:
  """Substitute bound values into the endpoint's SQL template."""
  sql = endpoint.sql
  for name, value in values.items():
    pattern = re.compile(
      rf'(?<![\w.]){re.escape(name)}\s*{OPERATOR}\s*{LITERAL}',
      re.IGNORECASE,
    )
    literal = render_literal(value)
    sql = pattern.sub(
      lambda match, name=name, literal=literal: f'{name} {match.group(1)} {literal}',
      sql,
      count=1,
    )
  return sql
