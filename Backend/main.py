import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

import config
from db.database import db_client, ensure_indexes
from models.errors import EntityError, InternalError, validation_error_from_pydantic
from models.todo import utcnow
from routes.todos import todo_router
from routes.users import user_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
)
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes(db_client.get_database())
    yield
    db_client.close()


# Create the FastAPI application instance
app = FastAPI(
    title="Todo API",
    description="API for creating, reading, updating, and deleting todos and user accounts.",
    version=API_VERSION,
    lifespan=lifespan,
)

# Frontends allowed to call the API; FRONTEND_URLS adds more,
# ALLOW_ALL_ORIGINS opens it up entirely
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if config.ALLOW_ALL_ORIGINS else config.ALLOWED_ORIGINS,
    allow_credentials=not config.ALLOW_ALL_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    return response


# --- Error envelope ---

@app.exception_handler(EntityError)
async def entity_error_handler(request: Request, exc: EntityError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    error = validation_error_from_pydantic(list(exc.errors()))
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        content = {"success": False, "error": "Not Found", "message": "The requested resource was not found."}
    else:
        content = {"success": False, "error": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=InternalError("Internal server error.").to_dict())


# Include the routers; /todos is kept as an alias for older frontends
app.include_router(todo_router, prefix="/api/todos")
app.include_router(todo_router, prefix="/todos", include_in_schema=False)
app.include_router(user_router, prefix="/api/users")


# --- Root Endpoints ---
@app.get("/", tags=["Root"])
def read_root():
    return {"message": "Todo Backend API Server", "version": API_VERSION, "status": "running"}


@app.get("/health", tags=["Root"])
def health():
    return {"status": "OK", "timestamp": utcnow().isoformat()}


# --- Main execution ---
if __name__ == "__main__":
    logger.info("Starting server on http://localhost:%s", config.PORT)
    uvicorn.run("main:app", host="0.0.0.0", port=config.PORT, reload=True)
