from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
import time
import logging

from app.config import settings
from app.web.routes import recommender

logger = logging.getLogger(__name__)

app = FastAPI(
    title="In-database Recommender Manager",
    description="API tạo / xóa recommender (model tables, views, catalog) trong database",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    """Log các request chậm (CREATE RECOMMENDER có thể build nhiều cell)."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    if process_time > 5:
        logger.warning(
            f"Slow request: {request.method} {request.url.path} "
            f"took {process_time:.2f}s"
        )
    return response


app.include_router(recommender.router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "In-database Recommender Manager",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "service": "recommender-manager"}
