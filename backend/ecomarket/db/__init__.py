"""
Database module containing session management and base models.
"""
from ecomarket.db.base import Base
from ecomarket.db.session import create_engine_from_settings, create_session_maker, get_db

__all__ = ["Base", "create_engine_from_settings", "create_session_maker", "get_db"]
