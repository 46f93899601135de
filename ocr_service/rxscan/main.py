"""
main.py

This is the main entry point of the FastAPI application.
Here we create the FastAPI app and register all API routes.

This file does NOT contain business logic.
It only wires everything together.
"""

import logging

from fastapi import FastAPI

# Import API routers
from rxscan.api.extract import router as extract_router
from rxscan.api.health import router as health_router
from rxscan.config import LOG_LEVEL


def create_app() -> FastAPI:
    """
    Creates and returns the FastAPI application instance.
    This function helps keep the app creation clean and testable.
    """
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    app = FastAPI(
        title="RxScan OCR Service",
        description="Prescription image text extraction with simulated OCR errors",
        version="1.0.0"
    )

    # Register API routes
    app.include_router(health_router, prefix="/health", tags=["Health"])
    app.include_router(extract_router, prefix="/api", tags=["Extract"])

    return app


# Create the FastAPI app instance
app = create_app()
