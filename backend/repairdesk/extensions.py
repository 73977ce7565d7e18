# Overview: Flask extension instances for database, migrations and the read cache.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .query_cache import QueryCache

db = SQLAlchemy()
migrate = Migrate()
query_cache = QueryCache()
