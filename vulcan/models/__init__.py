"""Models package for connection, endpoint and published API records."""

from vulcan.models.connection import ConnectionDescriptor, Engine
from vulcan.models.endpoint import HttpMethod, ParamLocation, ParamType, SQLEndpoint, SQLParam
from vulcan.models.published_api import APIMetrics, APIStatus, PublishedAPI

__all__ = [
    'ConnectionDescriptor',
    'Engine',
    'HttpMethod',
    'ParamLocation',
    'ParamType',
    'SQLEndpoint',
    'SQLParam',
    'APIMetrics',
    'APIStatus',
    'PublishedAPI',
]
