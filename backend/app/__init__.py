"""Application helpers for the School Directory backend service.

The ``server`` module wires these building blocks into the FastAPI
application: configuration, the SQLAlchemy record store, blob storage for
uploaded images, and the school validation and listing logic.
"""

from . import config, database, firebase_service, school_profiles

__all__ = [
    "config",
    "database",
    "firebase_service",
    "school_profiles",
]
