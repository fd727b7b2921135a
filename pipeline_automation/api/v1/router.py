from fastapi import APIRouter

from pipeline_automation.api.v1.endpoints import health, logs, rules, signals

router = APIRouter(prefix="/api/v1")

router.include_router(signals.router)
router.include_router(rules.router)
router.include_router(logs.router)
router.include_router(health.router)
