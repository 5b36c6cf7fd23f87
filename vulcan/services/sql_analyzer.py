"""Heuristic SQL analyzer.

Turns a raw SQL string into an SQLEndpoint using regex and string splitting.
This is not a SQL parser: nested parentheses, OR logic, subqueries, joins and
quoting are not understood. SQL that matches none of the expected shapes
degrades to a parameter-less GET endpoint on ``/api``. ``parse`` never raises.
"""

import re
from typing import Any, Protocol

from vulcan.lib.structured_logger import StructuredLogger
from vulcan.models.endpoint import HttpMethod, ParamLocation, ParamType, SQLEndpoint, SQLParam

logger = StructuredLogger(__name__)

VERB_METHODS = {
  'select': HttpMethod.GET,
  'insert': HttpMethod.POST,
  'update': HttpMethod.PUT,
  'delete': HttpMethod.DELETE,
}

FROM_PATTERN = re.compile(r'\bfrom\s+(\w+)', re.IGNORECASE)
INSERT_TARGET_PATTERN = re.compile(r'^\s*insert\s+into\s+(\w+)', re.IGNORECASE)
UPDATE_TARGET_PATTERN = re.compile(r'^\s*update\s+(\w+)', re.IGNORECASE)
WHERE_PATTERN = re.compile(
  r'\bwhere\s+(.*?)(?:\s+(?:order|group|limit)\b|\s*;?\s*$)',
  re.IGNORECASE | re.DOTALL,
)
AND_SPLIT_PATTERN = re.compile(r'\s+and\s+', re.IGNORECASE)
# Two-character operators first so '>=' is not read as '>'
OPERATOR_PATTERN = re.compile(r'\s*(>=|<=|!=|=|>|<|\bLIKE\b)\s*', re.IGNORECASE)
NUMBER_LITERAL = re.compile(r'^\d+$')
BOOLEAN_LITERALS = {'true', 'false'}

BASE_PATH = '/api'


class SqlAnalyzer(Protocol):
  """Anything that can turn SQL text into an endpoint definition."""

  def parse(self, sql: str) -> SQLEndpoint:
    ...


def infer_param_type(literal: str) -> ParamType:
  """Infer a parameter type from the literal on the right of an operator."""
  value = literal.strip().strip('\'"')
  if NUMBER_LITERAL.match(value):
    return ParamType.NUMBER
  if value.lower() in BOOLEAN_LITERALS:
    return ParamType.BOOLEAN
  return ParamType.STRING


class HeuristicSqlAnalyzer:
  """Regex-based SQL to endpoint analyzer.

  Usage:
      analyzer = HeuristicSqlAnalyzer()
      endpoint = analyzer.parse('SELECT * FROM users WHERE id = 5')
      # endpoint.method == GET, endpoint.path == '/api/users'
  """

  def infer_method(self, sql: str) -> HttpMethod:
    tokens = sql.strip().split()
    if not tokens:
      return HttpMethod.GET
    return VERB_METHODS.get(tokens[0].lower(), HttpMethod.GET)

  def infer_table(self, sql: str) -> str | None:
    """Target table: first ``FROM x``, else ``INSERT INTO x`` / ``UPDATE x``."""
    for pattern in (FROM_PATTERN, INSERT_TARGET_PATTERN, UPDATE_TARGET_PATTERN):
      match = pattern.search(sql)
      if match:
        return match.group(1)
    return None

  def infer_path(self, sql: str) -> str:
    table = self.infer_table(sql)
    return f'{BASE_PATH}/{table}' if table else BASE_PATH

  def extract_params(self, sql: str) -> list[SQLParam]:
    """Parameters from the AND-separated conditions of the WHERE clause."""
    match = WHERE_PATTERN.search(sql)
    if not match:
      return []

    params: list[SQLParam] = []
    seen: set[str] = set()
    for condition in AND_SPLIT_PATTERN.split(match.group(1).strip()):
      parts = OPERATOR_PATTERN.split(condition.strip(), maxsplit=1)
      if len(parts) < 3:
        continue
      name, _operator, literal = parts
      name = name.strip()
      if not name or name in seen:
        continue
      seen.add(name)
      params.append(SQLParam(
        name=name,
        type=infer_param_type(literal),
        required=True,
        location=ParamLocation.QUERY,
      ))
    return params

  def parse(self, sql: str) -> SQLEndpoint:
    """Build an endpoint from SQL. Falls back to GET /api on any failure."""
    sql = sql or ''
    try:
      return SQLEndpoint(
        path=self.infer_path(sql),
        method=self.infer_method(sql),
        sql=sql,
        params=self.extract_params(sql),
      )
    except Exception as e:
      # Degrade rather than fail: the endpoint is still callable without params
      logger.warning(f'SQL analysis failed, using bare endpoint: {e}')
      return SQLEndpoint(path=BASE_PATH, method=HttpMethod.GET, sql=sql, params=[])

  def describe(self, endpoint: SQLEndpoint, base_url: str = '') -> dict[str, Any]:
    """Human-facing documentation for an endpoint, with a curl example."""
    query = '&'.join(f'{p.name}=value' for p in endpoint.params)
    url = f'{base_url}{endpoint.path}' + (f'?{query}' if query else '')
    return {
      'endpoint': endpoint.path,
      'method': endpoint.method.value,
      'parameters': [p.model_dump(mode='json') for p in endpoint.params],
      'example': {
        'request': f'curl -X {endpoint.method.value} {url}',
        'response': {
          'type': 'array',
          'items': {'type': 'object', 'properties': {}},
        },
      },
    }
