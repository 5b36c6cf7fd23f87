"""SQL Endpoint Pydantic Models.

An endpoint is a (path, method) pair bound to a SQL template and the
parameters extracted from its WHERE clause. Endpoints are produced once by
the SQL analyzer and never modified afterwards.
"""

from enum import Enum

from pydantic import BaseModel, Field


class HttpMethod(str, Enum):
  """HTTP methods an endpoint can be published under."""
  GET = 'GET'
  POST = 'POST'
  PUT = 'PUT'
  DELETE = 'DELETE'


class ParamType(str, Enum):
  """Parameter types inferred from the literal in the SQL template."""
  STRING = 'string'
  NUMBER = 'number'
  BOOLEAN = 'boolean'


class ParamLocation(str, Enum):
  """Where a parameter is read from on an incoming request."""
  QUERY = 'query'
  BODY = 'body'
  PATH = 'path'


class SQLParam(BaseModel):
  """Parameter declared by a SQL endpoint."""

  name: str = Field(..., min_length=1, description='Column name used in the WHERE clause')
  type: ParamType = Field(default=ParamType.STRING, description='Inferred parameter type')
  required: bool = Field(default=True, description='Request must supply the parameter')
  location: ParamLocation = Field(default=ParamLocation.QUERY, description='Request location')

  model_config = {'frozen': True}


class SQLEndpoint(BaseModel):
  """SQL template published as an HTTP endpoint.

  Attributes:
      path: Route path, '/api/<table>' or '/api'
      method: HTTP method inferred from the statement verb
      sql: Original SQL template
      params: Parameters extracted from the WHERE clause
  """

  path: str = Field(..., description='Route path')
  method: HttpMethod = Field(default=HttpMethod.GET, description='HTTP method')
  sql: str = Field(..., description='SQL template')
  params: list[SQLParam] = Field(default_factory=list, description='Declared parameters')

  model_config = {
    'frozen': True,
    'json_schema_extra': {
      'example': {
        'path': '/api/users',
        'method': 'GET',
        'sql': 'SELECT * FROM users WHERE id = 5',
        'params': [{'name': 'id', 'type': 'number', 'required': True, 'location': 'query'}],
      }
    },
  }
