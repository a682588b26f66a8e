"""Services package for business logic."""

from .clipper import clipper, job_store, probe, ClipService

__all__ = [
    'clipper',
    'job_store',
    'probe',
    'ClipService',
]
