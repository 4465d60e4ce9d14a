"""HTTP routes for deploysafe."""

from __future__ import annotations

import logging
from typing import Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..config import HEALTH_ENDPOINT, Settings, get_settings
from ..errors import ConfigurationError
from ..health.checks import build_health_report
from ..health.models import HealthReport

logger = logging.getLogger(__name__)

router = APIRouter()


def provide_settings() -> Union[Settings, ConfigurationError]:
    """Settings for a request, or the configuration error that prevented loading them."""
    try:
        return get_settings()
    except ConfigurationError as exc:
        return exc


def _configuration_failure_report(exc: ConfigurationError) -> HealthReport:
    # Unvalidated defaults: no paths, so nothing is reported as durable
    report = build_health_report(Settings.model_construct())
    return report.model_copy(update={"status": "error", "error": exc.message})


@router.get(HEALTH_ENDPOINT)
def health(settings: Union[Settings, ConfigurationError] = Depends(provide_settings)) -> JSONResponse:
    """Return the health report; HTTP 503 when it is in error."""
    if isinstance(settings, ConfigurationError):
        logger.error("Health endpoint has no valid configuration: %s", settings.message)
        report = _configuration_failure_report(settings)
    else:
        report = build_health_report(settings)
    status_code = 200 if report.is_healthy else 503
    return JSONResponse(content=report.to_payload(), status_code=status_code)


__all__ = ["router", "provide_settings"]
