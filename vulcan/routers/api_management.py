"""API Management Router.

CRUD over the published API store.
"""

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, ValidationError

from vulcan.lib.errors import APINotFoundError, to_http_exception
from vulcan.lib.structured_logger import StructuredLogger
from vulcan.models.published_api import APIStatus
from vulcan.services.api_repository import JsonFileAPIRepository, get_api_repository

router = APIRouter()
logger = StructuredLogger(__name__)

REQUIRED_CREATE_FIELDS = ('name', 'sqlQuery', 'connectionId', 'url')


class UpdateStatusRequest(BaseModel):
    """Request body for changing an API's status."""
    id: str | None = Field(default=None, description='Published API id')
    status: str | None = Field(default=None, description='active or inactive')


class DeleteAPIRequest(BaseModel):
    """Request body for deleting an API."""
    id: str | None = Field(default=None, description='Published API id')


class SyncStateRequest(BaseModel):
    """Request body replacing the whole store."""
    apis: list[dict[str, Any]] = Field(..., description='PublishedAPI records')


def _bad_request(message: str, error_code: str = 'INVALID_REQUEST') -> HTTPException:
    return HTTPException(status_code=400, detail={'error_code': error_code, 'message': message})


def _server_error(message: str, e: Exception) -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={
            'error_code': 'STORE_ERROR',
            'message': message,
            'technical_details': {'error_type': type(e).__name__},
        },
    )


@router.get('/sync-state')
async def get_state(repository: JsonFileAPIRepository = Depends(get_api_repository)):
    """Current server state: ``{apis: PublishedAPI[]}``."""
    try:
        apis = await asyncio.to_thread(repository.list_apis)
        return {'apis': [api.to_wire() for api in apis]}
    except Exception as e:
        logger.error(f'Error getting state: {e}', exc_info=True)
        raise _server_error('Internal server error', e)


@router.post('/sync-state')
async def sync_state(
    request: SyncStateRequest,
    repository: JsonFileAPIRepository = Depends(get_api_repository),
):
    """Replace the server state with the client's list of APIs.

    Raises:
        400: A record is malformed
    """
    logger.info('Received APIs to sync', api_count=len(request.apis))
    try:
        apis = await asyncio.to_thread(repository.sync_with_server, request.apis)
    except ValidationError as e:
        raise _bad_request(f'Invalid APIs data format: {e.error_count()} validation error(s)')
    except Exception as e:
        logger.error(f'Error syncing state: {e}', exc_info=True)
        raise _server_error('Internal server error', e)

    return {'message': 'State synced successfully', 'apis': [api.to_wire() for api in apis]}


@router.get('/list')
async def list_apis(repository: JsonFileAPIRepository = Depends(get_api_repository)):
    """All published APIs."""
    apis = await asyncio.to_thread(repository.list_apis)
    return [api.to_wire() for api in apis]


@router.get('/apis/{api_id}')
async def get_api(api_id: str, repository: JsonFileAPIRepository = Depends(get_api_repository)):
    """One published API.

    Raises:
        404: No API with this id
    """
    api = await asyncio.to_thread(repository.get_api, api_id)
    if api is None:
        raise to_http_exception(APINotFoundError(api_id))
    return api.to_wire()


@router.post('/create')
async def create_api(
    body: dict[str, Any],
    repository: JsonFileAPIRepository = Depends(get_api_repository),
):
    """Create a published API record.

    The server assigns id, createdAt, status (active) and zeroed metrics.

    Raises:
        400: name, sqlQuery, connectionId or url missing
    """
    missing = [name for name in REQUIRED_CREATE_FIELDS if not body.get(name)]
    if missing:
        raise _bad_request(f"Missing required fields: {', '.join(missing)}", 'MISSING_FIELDS')

    try:
        api = await asyncio.to_thread(repository.add_api, body)
    except ValidationError as e:
        raise _bad_request(f'Invalid API data: {e.error_count()} validation error(s)')
    except Exception as e:
        logger.error(f'Error creating API: {e}', exc_info=True)
        raise _server_error('Failed to create API', e)

    return {'message': 'API created successfully', 'api': api.to_wire()}


@router.post('/update-status')
async def update_status(
    request: UpdateStatusRequest,
    repository: JsonFileAPIRepository = Depends(get_api_repository),
):
    """Activate or deactivate a published API.

    Raises:
        400: id or status missing, or status not active/inactive
        404: No API with this id
    """
    logger.info('Received update request', api_id=request.id, status=request.status)

    if not request.id or not request.status:
        raise _bad_request('Missing required fields', 'MISSING_FIELDS')
    if request.status not in {status.value for status in APIStatus}:
        raise _bad_request('Invalid status')

    try:
        api = await asyncio.to_thread(
            repository.update_api_status, request.id, APIStatus(request.status)
        )
    except APINotFoundError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f'Error updating API status: {e}', exc_info=True, api_id=request.id)
        raise _server_error('Failed to update API status', e)

    return {'message': 'API status updated successfully', 'api': api.to_wire()}


@router.post('/delete')
async def delete_api(
    request: DeleteAPIRequest,
    repository: JsonFileAPIRepository = Depends(get_api_repository),
):
    """Delete a published API.

    Raises:
        400: id missing
        404: No API with this id
    """
    if not request.id:
        raise _bad_request('API ID is required', 'MISSING_FIELDS')

    try:
        await asyncio.to_thread(repository.delete_api, request.id)
    except APINotFoundError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f'Error deleting API: {e}', exc_info=True, api_id=request.id)
        raise _server_error('Failed to delete API', e)

    return {'message': 'API deleted successfully', 'id': request.id}


@router.post('/clear-all')
async def clear_all(repository: JsonFileAPIRepository = Depends(get_api_repository)):
    """Remove every published API. The state file is kept with an empty list."""
    try:
        await asyncio.to_thread(repository.clear_all_apis)
    except Exception as e:
        logger.error(f'Error clearing APIs: {e}', exc_info=True)
        raise _server_error('Failed to clear APIs', e)

    return {'message': 'All APIs cleared successfully'}
