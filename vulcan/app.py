"""FastAPI application for the Vulcan SQL-to-API service."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from vulcan.lib.config import get_settings, load_env_files
from vulcan.lib.metrics import record_request_duration
from vulcan.lib.structured_logger import StructuredLogger, bind_request_id, log_request
from vulcan.routers import router

# Load .env files
load_env_files('.env', '.env.local')

logger = StructuredLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
  """Manage application lifespan."""
  settings = get_settings()
  logger.info(
    'Vulcan service starting',
    state_file=str(settings.state_file),
    encryption_configured=settings.is_encryption_configured,
  )
  if not settings.is_encryption_configured:
    logger.warning('VULCAN_ENCRYPTION_KEY is not set; publishing and calling SQL APIs will fail')
  yield


app = FastAPI(
  title='Vulcan SQL API',
  description='Publish SQL templates against MySQL and PostgreSQL as HTTP APIs',
  version='0.1.0',
  lifespan=lifespan,
)

app.add_middleware(
  CORSMiddleware,
  allow_origins=get_settings().cors_allow_origins,
  allow_credentials=True,
  allow_methods=['*'],
  allow_headers=['*'],
)


@app.middleware('http')
async def add_correlation_id(request: Request, call_next):
  """Inject correlation ID into the request context.

  - Extracts X-Correlation-ID header or generates new UUID
  - Sets correlation ID in context for logging
  - Adds X-Correlation-ID to response headers
  - Logs request with performance metrics
  """
  correlation_id = bind_request_id(request.headers.get('X-Correlation-ID'))
  request.state.correlation_id = correlation_id

  start_time = time.time()
  response = await call_next(request)
  duration_seconds = time.time() - start_time

  response.headers['X-Correlation-ID'] = correlation_id

  # Skip health and metrics endpoints to reduce noise
  if request.url.path not in ['/health', '/api/health', '/metrics']:
    record_request_duration(
      endpoint=request.url.path,
      method=request.method,
      status=response.status_code,
      duration_seconds=duration_seconds,
    )
    log_request(
      endpoint=request.url.path,
      method=request.method,
      status_code=response.status_code,
      duration_ms=duration_seconds * 1000,
    )

  return response


@app.get('/health')
async def health_root():
  """Health check endpoint at root level (for load balancers)."""
  return {'status': 'healthy'}


# Add /api/health for consistency with API structure
@app.get('/api/health')
async def health_api():
  """Health check endpoint under /api prefix."""
  return {'status': 'healthy'}


@app.get('/metrics')
async def metrics_root():
  """Prometheus metrics endpoint (request durations, SQL executions, API calls)."""
  return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Include API routers
app.include_router(router, prefix='/api', tags=['api'])
