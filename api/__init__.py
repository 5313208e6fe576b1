"""REST API module for the freelance marketplace.

This module provides HTTP endpoints for:
- Registration and login
- User administration and profiles
- Orders, freelancer responses and the acceptance workflow
- Per-order messaging
- Categories
- Archived orders with ratings and reviews
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings_conf
from database import init_db, close as db_close
from errors import MarketplaceError

# Configure logging
logging.basicConfig(
    level=settings_conf['log_level'],
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api"

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Initializing database...")
    await init_db()
    
    yield
    
    logger.info("Closing database connections...")
    await db_close()

app = FastAPI(
    title="Freelance Marketplace API",
    description="REST API for orders, proposals, messaging and reviews",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        # The first loc entry names the request part (body, path, query)
        field = ".".join(str(part) for part in first.get('loc', ())[1:])
        message = f"Invalid {field}: {first.get('msg')}" if field else first.get('msg')
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})

@app.get("/")
async def root():
    return {
        "name": "Freelance Marketplace API",
        "version": "1.0.0",
        "status": "running"
    }

# Import and include all routers
from .auth import router as auth_router
from .users import router as users_router
from .orders import router as orders_router
from .order_responses import router as order_responses_router
from .messages import router as messages_router
from .categories import router as categories_router
from .archived_orders import router as archived_orders_router

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(orders_router, prefix=API_PREFIX)
app.include_router(order_responses_router, prefix=API_PREFIX)
app.include_router(messages_router, prefix=API_PREFIX)
app.include_router(categories_router, prefix=API_PREFIX)
app.include_router(archived_orders_router, prefix=API_PREFIX)

__all__ = ['app']
