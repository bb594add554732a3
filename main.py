"""
Bar admin panel - FastAPI application
Main application entry point
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
import uvicorn

from barpanel.core.config import settings
from barpanel.core.db import engine, Base, get_db
from barpanel.api import routes_grid, routes_hooks, ws
from barpanel.services.change_feed import WATCHED_COLLECTIONS, install_sqlalchemy_hooks, watch_firestore_collection
from barpanel.services.errors import StoreError
from barpanel.services.grid_service import GridService
from barpanel.services.grids import BOOKINGS_GRID, VISITORS_GRID, GRIDS, GridDefinition
from barpanel.services.repositories import use_firestore

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    watches = []
    if use_firestore():
        for collection in WATCHED_COLLECTIONS:
            watches.append(watch_firestore_collection(collection))
    else:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created")
    install_sqlalchemy_hooks()
    yield
    for watch in watches:
        watch.unsubscribe()
    logger.info("Application shutdown")

# Create FastAPI application
app = FastAPI(
    title=settings.APP_TITLE,
    description="Bookings and visitors admin panel for the bar",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount static files
os.makedirs("static", exist_ok=True)
app.mount("/static", StaticFiles(directory="static"), name="static")

# Setup templates
templates = Jinja2Templates(directory="templates")

# Include routers
app.include_router(routes_grid.router, prefix="/api", tags=["grids"])
app.include_router(routes_hooks.router, prefix="/hooks", tags=["hooks"])
app.include_router(ws.router, prefix="/ws", tags=["websocket"])

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "ok"}

def render_grid_page(request: Request, grid: GridDefinition, page: int, db: Session):
    """Server-rendered first page; the browser then switches to the live socket"""
    rows, row_count, stale = [], 0, False
    try:
        grid_page = GridService.fetch_page(grid, grid.build_query(page=page), db)
        rows, row_count = grid.render_rows(grid_page.rows), grid_page.row_count
    except StoreError as e:
        logger.warning(f"Initial {grid.name} render without data: {e}")
        stale = True

    return templates.TemplateResponse(request, "grid.html", {
        "title": settings.APP_TITLE,
        "grid": grid,
        "grids": list(GRIDS.values()),
        "columns": grid.columns,
        "rows": rows,
        "row_count": row_count,
        "page": page,
        "page_size": settings.PAGE_SIZE,
        "stale": stale
    })

@app.get("/", response_class=HTMLResponse)
async def bookings_page(request: Request, page: int = Query(0, ge=0), db: Session = Depends(get_db)):
    """Bookings view"""
    return render_grid_page(request, BOOKINGS_GRID, page, db)

@app.get("/visitors", response_class=HTMLResponse)
async def visitors_page(request: Request, page: int = Query(0, ge=0), db: Session = Depends(get_db)):
    """Visitors view"""
    return render_grid_page(request, VISITORS_GRID, page, db)

# Note: Run this ASGI app directly with Uvicorn or Hypercorn. For Gunicorn,
# use `uvicorn.workers.UvicornWorker` instead of wrapping the app.

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="127.0.0.1",
        port=8000,
        reload=True
    )
