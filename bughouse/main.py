import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from bughouse.core import config
from bughouse.core.errors import DomainError, ValidationError
from bughouse.database import Database
from bughouse.models import availability, schedule, session, subject, tutor_application, user  # noqa: F401
from bughouse.routes import (
    availability_routes,
    schedule_routes,
    session_routes,
    timeslot_routes,
    tutor_application_routes,
)
from bughouse.services.resume_storage import ResumeStorage

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )


async def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    http_error = exc.to_http_exception()
    return JSONResponse(status_code=http_error.status_code, content={'detail': http_error.detail})


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationError(
        'Invalid request.',
        details={'errors': [{'loc': list(item['loc']), 'msg': item['msg']} for item in exc.errors()]},
    )
    return JSONResponse(status_code=error.status_code, content={'detail': error.to_dict()})


async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={'detail': 'Database unavailable. Verify DATABASE_URL and database credentials.'},
    )


def create_app(database: Database | None = None, resume_storage: ResumeStorage | None = None) -> FastAPI:
    app = FastAPI(title='BugHouse Scheduling API')

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    app.state.database = database or Database(config.DATABASE_URL, echo=config.SQL_ECHO)
    app.state.resume_storage = resume_storage or ResumeStorage(config.RESUME_STORAGE_DIR)

    app.add_exception_handler(DomainError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)

    @app.on_event('startup')
    def initialize_database() -> None:
        config.validate_runtime_config()
        try:
            app.state.database.create_all()
            app.state.database.ensure_schema()
        except SQLAlchemyError:
            logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    @app.on_event('shutdown')
    def close_database() -> None:
        app.state.database.dispose()

    @app.get('/')
    def root():
        return {'status': 'BugHouse Scheduling API Running'}

    app.include_router(schedule_routes.router, prefix='/schedules')
    app.include_router(timeslot_routes.router, prefix='/timeslots')
    app.include_router(availability_routes.router, prefix='/availability')
    app.include_router(session_routes.router, prefix='/sessions')
    app.include_router(tutor_application_routes.router)

    return app


configure_logging()
app = create_app()
