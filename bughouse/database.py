import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()

# Columns added after the first deployment; older databases get them on startup.
LATE_COLUMNS = {
    'tutoring_sessions': [
        ('signed_in_at', 'ALTER TABLE tutoring_sessions ADD COLUMN signed_in_at TIMESTAMP'),
        ('signed_out_at', 'ALTER TABLE tutoring_sessions ADD COLUMN signed_out_at TIMESTAMP'),
        ('rating', 'ALTER TABLE tutoring_sessions ADD COLUMN rating INTEGER'),
        ('feedback', 'ALTER TABLE tutoring_sessions ADD COLUMN feedback VARCHAR'),
    ],
    'tutor_applications': [
        ('admin_note', 'ALTER TABLE tutor_applications ADD COLUMN admin_note VARCHAR'),
        ('decided_at', 'ALTER TABLE tutor_applications ADD COLUMN decided_at TIMESTAMP'),
    ],
}

LOOKUP_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_sessions_tutor_range ON tutoring_sessions(tutor_id, start_time, end_time)',
    'CREATE INDEX IF NOT EXISTS idx_sessions_student_start ON tutoring_sessions(student_id, start_time)',
    'CREATE INDEX IF NOT EXISTS idx_timeslots_schedule_tutor ON timeslots(schedule_id, tutor_id, start_time)',
    'CREATE INDEX IF NOT EXISTS idx_availability_day_start ON availability(day_of_week, start_time)',
]


class Database:
    """Owns the engine and session factory for one running service."""

    def __init__(self, url: str, echo: bool = False) -> None:
        engine_options = {'echo': echo}
        if url.startswith('sqlite'):
            engine_options['connect_args'] = {'check_same_thread': False}
            if ':memory:' in url or url in {'sqlite://', 'sqlite:///'}:
                engine_options['poolclass'] = StaticPool

        self.url = url
        self.engine: Engine = create_engine(url, **engine_options)
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self._schema_lock = Lock()
        self._schema_checked = False

    def session(self) -> Session:
        return self.session_factory()

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def ensure_schema(self) -> None:
        if self._schema_checked:
            return

        with self._schema_lock:
            if self._schema_checked:
                return

            inspector = inspect(self.engine)
            table_names = set(inspector.get_table_names())

            with self.engine.begin() as connection:
                for table_name, migration_steps in LATE_COLUMNS.items():
                    if table_name not in table_names:
                        continue
                    existing_columns = {column['name'] for column in inspector.get_columns(table_name)}
                    for column_name, statement in migration_steps:
                        if column_name not in existing_columns:
                            logger.info('Adding column %s.%s', table_name, column_name)
                            connection.execute(text(statement))
                for statement in LOOKUP_INDEXES:
                    connection.execute(text(statement))

            self._schema_checked = True

    def dispose(self) -> None:
        self.engine.dispose()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block, or roll all of it back."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
