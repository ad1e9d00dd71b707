from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mind_reset.api.routers.habits import router as habits_router
from mind_reset.api.routers.notes import router as notes_router
from mind_reset.api.routers.reports import router as reports_router
from mind_reset.api.routers.schedules import router as schedules_router
from mind_reset.api.routers.users import router as users_router
from mind_reset.db import describe_db
from mind_reset.errors import NotFound, ValidationError
from mind_reset.logging_utils import configure_logging


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Mind Reset API")

    app.include_router(users_router)
    app.include_router(schedules_router)
    app.include_router(habits_router)
    app.include_router(notes_router)
    app.include_router(reports_router)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": exc.user_message()})

    @app.exception_handler(NotFound)
    async def not_found(request: Request, exc: NotFound):
        return JSONResponse(status_code=404, content={"detail": exc.user_message()})

    @app.get("/health")
    def health():
        return {"ok": True, "db": describe_db()["dialect"]}

    return app
