# Overview: Flask extension instances for the database and the access cache.

from flask_sqlalchemy import SQLAlchemy

from .services.access_cache import AccessCache

db = SQLAlchemy()
access_cache = AccessCache()
