from fastapi import Depends

from catalog_service.config.database import get_database
from catalog_service.services.background import BackgroundTaskSupervisor, get_task_supervisor
from catalog_service.services.media_manager import MediaManager
from catalog_service.services.media_service import MediaService, get_media_service
from catalog_service.services.product_service import ProductService


def get_product_service(
    media: MediaService = Depends(get_media_service),
    tasks: BackgroundTaskSupervisor = Depends(get_task_supervisor),
) -> ProductService:
    return ProductService(get_database(), MediaManager(media, tasks))
