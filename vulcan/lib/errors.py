"""Error taxonomy for the SQL-to-API publishing service.

Every error carries the HTTP status it maps to and a stable error code.
Routers convert them into HTTPException bodies shaped
``{'error_code': ..., 'message': ...}``.
"""

from typing import Any

from fastapi import HTTPException


class VulcanError(Exception):
  """Base class for all service errors."""

  status_code = 500
  error_code = 'INTERNAL_ERROR'

  def __init__(self, message: str, **details: Any):
    super().__init__(message)
    self.message = message
    self.details = details

  def to_detail(self) -> dict[str, Any]:
    """Error body used in HTTP responses."""
    detail: dict[str, Any] = {'error_code': self.error_code, 'message': self.message}
    if self.details:
      detail['technical_details'] = self.details
    return detail


class ParameterValidationError(VulcanError):
  """A declared parameter is missing or cannot be coerced to its type."""

  status_code = 400
  error_code = 'PARAMETER_VALIDATION'

  def __init__(self, message: str, parameter: str | None = None):
    super().__init__(message)
    self.parameter = parameter
    if parameter:
      self.details = {'parameter': parameter}


class InvalidConnectionError(VulcanError):
  """Connection descriptor is undecryptable, unparsable or incomplete."""

  status_code = 400
  error_code = 'INVALID_CONNECTION'


class NotFoundError(VulcanError):
  """No matching router, endpoint or record."""

  status_code = 404
  error_code = 'NOT_FOUND'


class APINotFoundError(NotFoundError):
  """Published API record does not exist."""

  error_code = 'API_NOT_FOUND'

  def __init__(self, api_id: str):
    super().__init__(f'API not found with id: {api_id}', api_id=api_id)
    self.api_id = api_id


class APIInactiveError(VulcanError):
  """Published API exists but has been switched off."""

  status_code = 403
  error_code = 'API_INACTIVE'


class MethodNotAllowedError(VulcanError):
  """Router exists for the path but has no endpoint for the method."""

  status_code = 405
  error_code = 'METHOD_NOT_ALLOWED'


class ExecutionError(VulcanError):
  """SQL or connection failure while running a published query."""

  status_code = 500
  error_code = 'EXECUTION_FAILED'


class StateFileError(VulcanError):
  """State file exists but cannot be read as ``{"apis": [...]}``."""

  status_code = 500
  error_code = 'STATE_FILE_UNREADABLE'

  def __init__(self, path: str, reason: str):
    super().__init__(f'Cannot read state file {path}: {reason}', state_file=path)


class ConfigurationError(VulcanError):
  """Required configuration (e.g. the encryption secret) is missing."""

  status_code = 503
  error_code = 'NOT_CONFIGURED'


def to_http_exception(error: VulcanError) -> HTTPException:
  """HTTPException carrying the error's status code and detail body."""
  headers = None
  if isinstance(error, MethodNotAllowedError) and error.details.get('allowed'):
    headers = {'Allow': ', '.join(error.details['allowed'])}
  return HTTPException(status_code=error.status_code, detail=error.to_detail(), headers=headers)
