# Overview: Flask extension instances for database, migrations and the read-through cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .services.cache_service import LedgerCache

db = SQLAlchemy()
migrate = Migrate()
cache = LedgerCache()
