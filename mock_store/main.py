"""
Mock Store Application

A local stand-in for the storefront's REST collaborators: product catalog,
order service and the M-Pesa STK push endpoints.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from .routes import products_router, orders_router, mpesa_router
from .database import product_db

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Mock Store starting up...")
    logger.info(f"Catalog seeded with {len(product_db.products)} products")
    logger.info(f"M-Pesa shortcode: {os.getenv('MPESA_SHORTCODE', '174379')}")
    yield
    logger.info("Mock Store shutting down...")


# Create FastAPI app
app = FastAPI(
    title="Mock Store",
    description="Simulated catalog, orders and M-Pesa API for Linda's Nut Butter storefront",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(products_router)
app.include_router(orders_router)
app.include_router(mpesa_router)


@app.get("/")
async def home():
    """API index"""
    return {
        "message": "Mock Store API",
        "docs": "/docs",
        "endpoints": {
            "products": "/api/products",
            "orders": "/api/orders",
            "mpesa": "/api/mpesa",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "mock-store"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mock_store.main:app",
        host="0.0.0.0",
        port=int(os.getenv("MOCK_STORE_PORT", "5000")),
        reload=True,
    )
