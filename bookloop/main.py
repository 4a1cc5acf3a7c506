import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from .config import settings
from .core import init_metrics, setup_logging
from .errors import register_exception_handlers
from .mailer import EmailSender
from .models import Database
from .routes import router
from .workers import SweeperManager

logger = logging.getLogger('bookloop')


def create_app(database: Optional[Database] = None, mailer=None, run_sweepers: Optional[bool] = None) -> FastAPI:
    """Build the API. A passed-in database is used as is and not disposed on shutdown."""
    setup_logging(settings.log_level)
    app = FastAPI(title="BookLoop API", version="0.3.0")
    app.state.database = database
    app.state.owns_database = database is None
    app.state.mailer = mailer or EmailSender()
    app.state.sweepers = None
    run_sweepers = settings.sweepers_enabled if run_sweepers is None else run_sweepers

    app.add_middleware(
        CORSMiddleware,
        allow_origins=['http://localhost:3000'],
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    register_exception_handlers(app)
    app.include_router(router, prefix="/api")

    @app.get('/healthz')
    async def healthz():
        return {'status': 'ok'}

    @app.middleware('http')
    async def log_requests(request: Request, call_next):
        if request.method == 'TRACE':
            return PlainTextResponse('TRACE method is disabled.', status_code=405)
        logger.info({'msg': 'request_start', 'method': request.method, 'path': request.url.path})
        response = await call_next(request)
        logger.info({'msg': 'request_end', 'path': request.url.path, 'status': response.status_code})
        return response

    @app.on_event("startup")
    async def startup():
        if app.state.database is None:
            app.state.database = Database(settings.database_url, echo=settings.db_echo, pool_pre_ping=True)
        init_metrics(settings.metrics_port)
        if run_sweepers:
            app.state.sweepers = SweeperManager(app.state.database)
            await app.state.sweepers.start_all()

    @app.on_event("shutdown")
    async def shutdown():
        if app.state.sweepers:
            await app.state.sweepers.stop_all()
        if app.state.owns_database and app.state.database is not None:
            await app.state.database.dispose()
            logger.info("Database engine disposed")

    return app


app = create_app()
