import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

import models
import uvicorn

from config import setup_logging
from database import engine
from errors import AuthServiceError, auth_error_handler
from routes import auth_router, users_router

setup_logging()
logger = logging.getLogger("api")

# Create the database tables
models.Base.metadata.create_all(bind=engine)

app = FastAPI()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AuthServiceError, auth_error_handler)


# Request bodies are not logged: they carry passwords and codes.
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s - %s %.1fms",
        request.method, request.url.path, response.status_code, duration_ms,
    )
    return response


@app.get('/')
async def api_root():
    return {"message": "Api is running!..."}


@app.get('/server')
async def server_health():
    return {"message": "Server is healthy!..."}

app.include_router(auth_router, prefix='/auth', tags=['auth'])
app.include_router(users_router, prefix='/users', tags=['users'])


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
