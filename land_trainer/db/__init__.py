"""
Database module initialization.
"""

from land_trainer.db.database import (
    SessionLocal,
    engine,
    init_db,
    get_db,
    get_or_create_user,
    get_user_profile,
    get_all_personas,
    get_all_parcels,
)

__all__ = [
    'SessionLocal',
    'engine',
    'init_db',
    'get_db',
    'get_or_create_user',
    'get_user_profile',
    'get_all_personas',
    'get_all_parcels',
]
