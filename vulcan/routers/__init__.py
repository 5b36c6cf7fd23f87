# Router module for the SQL-to-API service
# Mounted under /api by the application

from fastapi import APIRouter

from .api_management import router as api_management_router
from .sql import router as sql_router
from .vulcan import router as vulcan_router

router = APIRouter()
router.include_router(vulcan_router, prefix='/vulcan', tags=['vulcan'])
router.include_router(sql_router, tags=['sql'])  # No prefix - serves /api/sql/{table} and /api/sql-to-api
router.include_router(api_management_router, prefix='/api-management', tags=['api-management'])
