"""Per-API call accounting around a published query execution."""

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

from vulcan.lib.errors import APINotFoundError, StateFileError
from vulcan.lib.metrics import record_sql_api_call, track_concurrent_call
from vulcan.lib.structured_logger import StructuredLogger
from vulcan.services.api_repository import APIRepository

logger = StructuredLogger(__name__)

T = TypeVar('T')


async def run_tracked(
  repository: APIRepository,
  api_id: str | None,
  operation: Callable[[], Awaitable[T]],
) -> T:
  """Run operation, recording concurrency, outcome and latency for api_id.

  Without an api_id, or when the record is unknown, the operation runs
  untracked. Metric write failures are logged and never fail the call.
  Exceptions raised by the operation are re-raised after the failure is
  recorded.
  """
  if not api_id:
    return await operation()

  try:
    await asyncio.to_thread(repository.begin_call, api_id)
  except APINotFoundError:
    logger.warning('Metrics skipped for unknown API', api_id=api_id)
    return await operation()
  except StateFileError as e:
    logger.error(f'Metrics skipped, {e.message}', api_id=api_id)
    return await operation()

  track_concurrent_call(1)
  start_time = time.perf_counter()
  success = False
  try:
    result = await operation()
    success = True
    return result
  finally:
    elapsed_ms = (time.perf_counter() - start_time) * 1000
    track_concurrent_call(-1)
    record_sql_api_call(api_id, 'success' if success else 'failure')
    try:
      await asyncio.to_thread(repository.complete_call, api_id, success, elapsed_ms)
    except Exception as e:
      logger.error(f'Error updating API metrics: {e}', api_id=api_id)
