from fastapi import APIRouter, Depends

from files_index.adapters.storage import BaseObjectStore
from files_index.config.settings import Settings
from files_index.dependencies import get_app_settings, get_store
from files_index.errors import StoreAdapterError

router = APIRouter()

@router.get("/health")
def health_check(
    settings: Settings = Depends(get_app_settings),
    store: BaseObjectStore = Depends(get_store),
):
    """
    Health check endpoint for monitoring API status and component readiness.

    Returns status of the API and the object store along with deployment mode.
    """
    health_status = {
        "status": "ok",
        "deployment_mode": settings.deployment_mode,
        "store": store.describe(),
        "components": {
            "api": "ready",
            "store": "initializing",
        },
        "ready": False
    }

    # Check store status with the cheapest possible listing
    try:
        store.list(limit=1)
        health_status["components"]["store"] = "ready"
    except StoreAdapterError as e:
        health_status["components"]["store"] = f"error: {str(e)}"
        health_status["status"] = "degraded"

    health_status["ready"] = all(
        state == "ready" for state in health_status["components"].values()
    )

    return health_status
