"""Prometheus metrics endpoint for the intake line.

Exposes application metrics in Prometheus format for scraping.
"""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Metrics exposed include:
        - intakeline_active_calls: Current active calls
        - intakeline_calls_total: Total calls handled
        - intakeline_function_calls_total: Structured events by name and status
        - intakeline_scoring_total: Scores by source and recommendation
        - intakeline_post_finalize_effects_total: Persistence and notification outcomes
        - intakeline_sms_decisions_total: SMS sends and skip reasons
        - ... and more (see intake_agent/utils/metrics.py)
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )
