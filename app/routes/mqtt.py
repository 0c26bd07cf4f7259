from fastapi import APIRouter, Depends
from app.config import settings
from app.services.mqtt_service import mqtt_service
from app.services.auth import require_librarian
from app.models.user import User

router = APIRouter(prefix="/api/mqtt", tags=["MQTT"])

@router.get("/status")
async def get_mqtt_status(librarian: User = Depends(require_librarian)):
    """Get MQTT availability bridge status (librarians only)."""
    return {
        "enabled": settings.mqtt_enabled,
        "connected": mqtt_service.is_connected,
        "running": mqtt_service.is_running(),
        "topicFormat": settings.mqtt_availability_topic_format,
    }
