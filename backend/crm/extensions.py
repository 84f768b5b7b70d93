# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Every service talks to storage through db.session; tests swap the URI for sqlite in-memory.
db = SQLAlchemy()
migrate = Migrate()
