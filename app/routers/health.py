"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from datetime import datetime
import logging

from app.dependencies.services import ServiceContainer, get_container
from app.models.schemas import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(container: ServiceContainer = Depends(get_container)):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with status of the database and object store,
        and whether a remote model is configured
    """
    # Check database connection
    db_status = "ok"
    try:
        async with container.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        db_status = "error"

    # Check object store
    store_status = "ok"
    try:
        if not await container.object_store.check():
            store_status = "error"
    except Exception as e:
        logger.error("Object store health check failed: %s", e)
        store_status = "error"

    # Remote model is optional; its absence does not degrade the service
    overall_status = "healthy" if db_status == "ok" and store_status == "ok" else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        database=db_status,
        object_store=store_status,
        llm_configured=container.llm.configured,
        timestamp=datetime.utcnow(),
    )
