import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formsapi.config import config
from formsapi.database import database
from formsapi.errors import FormsError, forms_error_handler
from formsapi.routers.dashboard import router as dashboard_router
from formsapi.routers.field import router as field_router
from formsapi.routers.form import router as form_router
from formsapi.routers.permission import router as permission_router
from formsapi.routers.response import router as response_router
from formsapi.routers.role import router as role_router
from formsapi.routers.uploads import router as uploads_router
from formsapi.routers.user import router as user_router
from formsapi.storage import setup_bucket

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # connect database
    await database.connect()
    setup_bucket()
    yield
    # disconnect database
    await database.disconnect()


app = FastAPI(
    title="Forms Backend API",
    description="API for building forms, collecting responses and managing access",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(FormsError, forms_error_handler)

app.include_router(user_router, prefix="/api/users", tags=["User"])
app.include_router(role_router, prefix="/api/roles", tags=["Role"])
app.include_router(permission_router, prefix="/api/permissions", tags=["Permission"])
app.include_router(form_router, prefix="/api/forms", tags=["Form"])
app.include_router(field_router, prefix="/api/forms", tags=["Field"])
app.include_router(response_router, prefix="/api/forms", tags=["Response"])
app.include_router(uploads_router, prefix="/api/forms", tags=["Uploads"])
app.include_router(dashboard_router, prefix="/api/dashboards", tags=["Dashboard"])


@app.get("/api/health", tags=["Health"])
async def health():
    return {"status": "ok"}
