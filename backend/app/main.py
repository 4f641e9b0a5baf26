import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.friends import router as friends_router
from app.api.v1.health import router as health_router
from app.api.v1.logs import router as logs_router
from app.api.v1.users import router as users_router
from app.core.errors import CoreError
from app.core.settings import settings

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

# Local dev: allow Vite dev server to call the API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CoreError)
def handle_core_error(request: Request, exc: CoreError):
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
    )


app.include_router(
    health_router,
    prefix=settings.API_V1_STR,
    tags=["Health"],
)
app.include_router(
    users_router,
    prefix=settings.API_V1_STR,
    tags=["Users"],
)
app.include_router(
    friends_router,
    prefix=settings.API_V1_STR,
    tags=["Friends"],
)
app.include_router(
    logs_router,
    prefix=settings.API_V1_STR,
    tags=["Logs"],
)
