"""
ApiKit Mappers - endpoint to source value indexing

Maps configured endpoints onto the source values they expose and back to
the endpoint-visible value names.
"""

from .endpoint_lookup import EndpointLookup

__all__ = ["EndpointLookup"]
