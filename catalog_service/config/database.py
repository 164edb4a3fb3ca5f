import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from catalog_service.core.config import settings

logger = logging.getLogger(__name__)

# 공유 MongoDB 클라이언트
_mongo_client = None


def get_mongo_client() -> AsyncIOMotorClient:
    """
    MongoDB 클라이언트 객체를 반환 (최초 호출 시 생성)
    """
    global _mongo_client

    if _mongo_client is None:
        try:
            _mongo_client = AsyncIOMotorClient(settings.MONGODB_URL)
            logger.info("MongoDB client initialized.", extra={"db_type": "mongodb", "database": settings.MONGODB_DATABASE})
        except Exception as e:
            logger.error("Failed to initialize MongoDB client.", extra={"error": str(e)}, exc_info=True)
            raise

    return _mongo_client


def get_database() -> AsyncIOMotorDatabase:
    return get_mongo_client()[settings.MONGODB_DATABASE]


def close_mongo_client():
    global _mongo_client

    if _mongo_client is not None:
        _mongo_client.close()
        _mongo_client = None
        logger.info("MongoDB client closed.")
