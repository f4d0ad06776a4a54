from sqlalchemy import event
from sqlmodel import Session, create_engine
from app.core.config import settings


def build_engine(url: str):
    if url.startswith('sqlite'):
        engine = create_engine(url, connect_args={'check_same_thread': False})

        @event.listens_for(engine, 'connect')
        def _enable_foreign_keys(dbapi_connection, _):  # noqa: ANN001
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys=ON')
            cursor.close()

        return engine
    return create_engine(url, pool_pre_ping=True)


engine = build_engine(settings.DB_URL)


def get_session():
    with Session(engine) as session:
        yield session
