from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os

from medtour.api.routes import health, search
from medtour.search.errors import SearchError

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Medtour Search API",
    description="Faceted search and SEO filter listings for medical-tourism facilities",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api")
app.include_router(search.router, prefix="/api")


@app.exception_handler(SearchError)
async def search_error_handler(request: Request, exc: SearchError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
async def log_startup():
    logger.info(
        "startup complete", extra={"env": os.getenv("APP_ENV", "dev"), "port": os.getenv("PORT", "8000")}
    )


@app.get("/")
async def root():
    return {"message": "Medtour Search API", "version": "1.0.0"}
