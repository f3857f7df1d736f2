"""
Flask extensions initialization.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from sqlalchemy import event

# Database
db = SQLAlchemy()

# Migrations
migrate = Migrate()


def enable_sqlite_savepoints(engine) -> None:
    """
    Let pysqlite honour SAVEPOINT / ROLLBACK TO inside a session transaction.

    The stdlib driver issues its own BEGIN lazily and commits before DDL,
    which breaks nested transactions. Hand transaction control to SQLAlchemy.
    """
    @event.listens_for(engine, 'connect')
    def _set_autocommit(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _emit_begin(conn):
        conn.exec_driver_sql('BEGIN')
