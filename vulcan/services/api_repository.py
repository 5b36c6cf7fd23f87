"""Published API Repository

Persistence for published API records and their call metrics.

``JsonFileAPIRepository`` keeps everything in a single JSON file shaped
``{"apis": [...]}``. The file is re-read on every operation and rewritten
wholesale (temp file + ``os.replace``) on every mutation. Each
read-modify-write runs under one process-wide lock, so concurrent calls to
the same API cannot lose metric increments. The file is not safe to share
between processes or hosts.
"""

import json
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from pydantic import ValidationError

from vulcan.lib.config import get_settings
from vulcan.lib.errors import APINotFoundError, StateFileError
from vulcan.lib.structured_logger import StructuredLogger, log_event
from vulcan.models.published_api import APIMetrics, APIStatus, PublishedAPI

logger = StructuredLogger(__name__)

# Fields a caller may not set when creating a record
_SERVER_OWNED_FIELDS = ('id', 'createdAt', 'created_at', 'metrics', 'status')

_METRIC_ALIASES = {name: info.alias or name for name, info in APIMetrics.model_fields.items()}


def normalize_url(url: str) -> str:
  """URL path without query string, trailing ';' or '/', lowercased."""
  path = url.split('?', 1)[0]
  if path.endswith(';'):
    path = path[:-1]
  if path.endswith('/'):
    path = path[:-1]
  if not path.startswith('/'):
    path = '/' + path
  return path.lower()


class APIRepository(Protocol):
  """Storage interface for published APIs."""

  def list_apis(self) -> list[PublishedAPI]: ...

  def get_api(self, api_id: str) -> PublishedAPI | None: ...

  def get_api_by_url(self, url: str) -> PublishedAPI | None: ...

  def find_apis_by_path(self, path: str) -> list[PublishedAPI]: ...

  def add_api(self, data: dict[str, Any]) -> PublishedAPI: ...

  def update_api_status(self, api_id: str, status: APIStatus) -> PublishedAPI: ...

  def update_api_metrics(self, api_id: str, metrics: dict[str, Any]) -> PublishedAPI: ...

  def delete_api(self, api_id: str) -> None: ...

  def clear_all_apis(self) -> None: ...

  def sync_with_server(self, apis: Iterable[dict[str, Any]]) -> list[PublishedAPI]: ...

  def begin_call(self, api_id: str) -> PublishedAPI: ...

  def complete_call(self, api_id: str, success: bool, response_time_ms: float) -> PublishedAPI: ...


class JsonFileAPIRepository:
  """APIRepository backed by one JSON file on local disk.

  Usage:
      repository = JsonFileAPIRepository(Path('server-state.json'))
      api = repository.add_api({'name': 'Users', 'url': '/api/sql/users?...', ...})
      repository.begin_call(api.id)
      repository.complete_call(api.id, success=True, response_time_ms=12.5)
  """

  def __init__(self, path: Path | str):
    self.path = Path(path)
    self._lock = threading.RLock()

  # ------------------------------------------------------------------
  # File I/O
  # ------------------------------------------------------------------

  def _read_records(self) -> list[Any]:
    """Raw records from the state file.

    Raises:
        StateFileError: If the file exists but is not ``{"apis": [...]}`` JSON
    """
    if not self.path.exists():
      return []
    try:
      with open(self.path, encoding='utf-8') as f:
        data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
      raise StateFileError(str(self.path), str(e)) from e
    raw_apis = data.get('apis') if isinstance(data, dict) else None
    if not isinstance(raw_apis, list):
      raise StateFileError(str(self.path), 'no apis list')
    return raw_apis

  def _load_for_update(self) -> tuple[list[PublishedAPI], list[Any]]:
    """Valid records, plus raw records that failed validation.

    The raw leftovers are written back untouched by ``_save`` so a single bad
    record never costs the rest of the store.

    Raises:
        StateFileError: If the file exists but cannot be read
    """
    apis: list[PublishedAPI] = []
    skipped: list[Any] = []
    for raw in self._read_records():
      try:
        apis.append(PublishedAPI.model_validate(raw))
      except ValidationError as e:
        logger.warning(
          f'Skipping invalid API record: {e.error_count()} validation error(s)',
          api_id=raw.get('id') if isinstance(raw, dict) else None,
          state_file=str(self.path),
        )
        skipped.append(raw)
    return apis, skipped

  def _load(self) -> list[PublishedAPI]:
    try:
      return self._load_for_update()[0]
    except StateFileError as e:
      logger.error(f'Error loading server state: {e.message}', state_file=str(self.path))
      return []

  def _save(self, apis: list[PublishedAPI], preserved: Iterable[Any] = ()) -> None:
    self.path.parent.mkdir(parents=True, exist_ok=True)
    payload = {'apis': [api.to_wire() for api in apis] + list(preserved)}
    fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.state-', suffix='.json')
    try:
      with os.fdopen(fd, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=2)
      os.replace(tmp_path, self.path)
    except BaseException:
      if os.path.exists(tmp_path):
        os.unlink(tmp_path)
      raise
    logger.debug('Saved server state', api_count=len(apis), state_file=str(self.path))

  @staticmethod
  def _index_of(apis: list[PublishedAPI], api_id: str) -> int:
    for index, api in enumerate(apis):
      if api.id == api_id:
        return index
    raise APINotFoundError(api_id)

  def _replace(
    self, apis: list[PublishedAPI], skipped: list[Any], index: int, updated: PublishedAPI
  ) -> None:
    self._save(apis[:index] + [updated] + apis[index + 1:], skipped)

  # ------------------------------------------------------------------
  # Queries
  # ------------------------------------------------------------------

  def list_apis(self) -> list[PublishedAPI]:
    with self._lock:
      return self._load()

  def get_api(self, api_id: str) -> PublishedAPI | None:
    with self._lock:
      return next((api for api in self._load() if api.id == api_id), None)

  def get_api_by_url(self, url: str) -> PublishedAPI | None:
    """First API whose URL path (query string ignored) equals url's path."""
    target = normalize_url(url)
    with self._lock:
      return next((api for api in self._load() if normalize_url(api.url) == target), None)

  def find_apis_by_path(self, path: str) -> list[PublishedAPI]:
    target = normalize_url(path)
    with self._lock:
      return [api for api in self._load() if normalize_url(api.url) == target]

  # ------------------------------------------------------------------
  # Mutations
  # ------------------------------------------------------------------
  # Each one fails with StateFileError, leaving the file as it is, when the
  # existing file cannot be read. clear_all_apis and sync_with_server replace
  # the whole store and do not read it first.

  def add_api(self, data: dict[str, Any]) -> PublishedAPI:
    """Create a record with a fresh id, zeroed metrics and active status.

    Raises:
        pydantic.ValidationError: If required fields are missing
        StateFileError: If the state file cannot be read
    """
    fields = {key: value for key, value in data.items() if key not in _SERVER_OWNED_FIELDS}
    new_api = PublishedAPI.model_validate(fields)
    with self._lock:
      apis, skipped = self._load_for_update()
      self._save(apis + [new_api], skipped)

    log_event('repository.api_created', context={
      'api_id': new_api.id,
      'table_name': new_api.table_name,
      'method': new_api.method.value,
    })
    return new_api

  def update_api_status(self, api_id: str, status: APIStatus) -> PublishedAPI:
    """Set an API's status.

    Raises:
        APINotFoundError: If no record has api_id
        StateFileError: If the state file cannot be read
    """
    with self._lock:
      apis, skipped = self._load_for_update()
      index = self._index_of(apis, api_id)
      updated = apis[index].model_copy(update={'status': APIStatus(status)})
      self._replace(apis, skipped, index, updated)

    log_event('repository.api_status_updated', context={'api_id': api_id, 'status': updated.status.value})
    return updated

  def update_api_metrics(self, api_id: str, metrics: dict[str, Any]) -> PublishedAPI:
    """Shallow-merge metric fields into an API's metrics.

    ``totalCalls`` is recomputed from success and failure counts and
    ``maxConcurrentCalls`` never decreases.

    Raises:
        APINotFoundError: If no record has api_id
        StateFileError: If the state file cannot be read
    """
    return self._update_metrics(api_id, lambda current: metrics)

  def _update_metrics(
    self,
    api_id: str,
    build: Callable[[APIMetrics], dict[str, Any]],
  ) -> PublishedAPI:
    with self._lock:
      apis, skipped = self._load_for_update()
      index = self._index_of(apis, api_id)
      current = apis[index].metrics

      merged = current.model_dump(by_alias=True)
      merged.update({_METRIC_ALIASES.get(key, key): value for key, value in build(current).items()})
      merged['maxConcurrentCalls'] = max(
        current.max_concurrent_calls,
        merged.get('currentConcurrentCalls') or 0,
      )
      updated = apis[index].model_copy(update={'metrics': APIMetrics.model_validate(merged)})
      self._replace(apis, skipped, index, updated)
      return updated

  def delete_api(self, api_id: str) -> None:
    """Remove an API.

    Raises:
        APINotFoundError: If no record has api_id
        StateFileError: If the state file cannot be read
    """
    with self._lock:
      apis, skipped = self._load_for_update()
      index = self._index_of(apis, api_id)
      self._save(apis[:index] + apis[index + 1:], skipped)

    log_event('repository.api_deleted', context={'api_id': api_id})

  def clear_all_apis(self) -> None:
    with self._lock:
      self._save([])
    log_event('repository.apis_cleared')

  def sync_with_server(self, apis: Iterable[dict[str, Any]]) -> list[PublishedAPI]:
    """Replace the whole store with the given records.

    Raises:
        pydantic.ValidationError: If any record is malformed (nothing is written)
    """
    validated = [PublishedAPI.model_validate(api) for api in apis]
    with self._lock:
      self._save(validated)
    log_event('repository.synced', context={'api_count': len(validated)})
    return validated

  # ------------------------------------------------------------------
  # Call accounting
  # ------------------------------------------------------------------

  def begin_call(self, api_id: str) -> PublishedAPI:
    """Count an invocation as in flight.

    Raises:
        APINotFoundError: If no record has api_id
        StateFileError: If the state file cannot be read
    """
    return self._update_metrics(api_id, lambda metrics: {
      'currentConcurrentCalls': metrics.current_concurrent_calls + 1,
    })

  def complete_call(self, api_id: str, success: bool, response_time_ms: float) -> PublishedAPI:
    """Record the outcome of an invocation started with ``begin_call``.

    A success updates the running mean ``(avg * total + latency) / (total + 1)``.
    A failure only bumps ``failedCalls``; the mean keeps its value.

    Raises:
        APINotFoundError: If no record has api_id
        StateFileError: If the state file cannot be read
    """
    def build(metrics: APIMetrics) -> dict[str, Any]:
      update: dict[str, Any] = {
        'currentConcurrentCalls': max(0, metrics.current_concurrent_calls - 1),
        'lastCalledAt': datetime.now(timezone.utc),
      }
      if success:
        total = metrics.total_calls
        average = (metrics.average_response_time * total + response_time_ms) / (total + 1)
        update['averageResponseTime'] = round(average, 2)
        update['successCalls'] = metrics.success_calls + 1
      else:
        update['failedCalls'] = metrics.failed_calls + 1
      return update

    return self._update_metrics(api_id, build)


_repositories: dict[Path, JsonFileAPIRepository] = {}
_repositories_lock = threading.Lock()


def get_api_repository() -> JsonFileAPIRepository:
  """Repository for the configured state file (FastAPI dependency).

  One instance per path, so every handler shares the same lock.
  """
  path = get_settings().state_file.resolve()
  with _repositories_lock:
    repository = _repositories.get(path)
    if repository is None:
      repository = JsonFileAPIRepository(path)
      _repositories[path] = repository
    return repository
