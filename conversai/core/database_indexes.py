"""
Database indexes for optimal query performance.

Run this module once after setting up the database to create indexes.
You can run it with: python -m conversai.core.database_indexes
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from conversai.core.config import settings
import asyncio
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def ensure_chat_indexes(db: AsyncIOMotorDatabase):
    """Create the indexes of the 'chats' collection"""
    # One document per chat of a user; upserts rely on this pair
    await db.chats.create_index([("userId", 1), ("chatId", 1)], unique=True)
    # Sidebar listing, most recently updated first
    await db.chats.create_index([("userId", 1), ("updatedAt", -1)])
    logger.info("✓ Created indexes for 'chats' collection")


async def create_indexes():
    """Create all necessary database indexes"""
    client = AsyncIOMotorClient(settings.MONGODB_URL)
    db = client[settings.DATABASE_NAME]

    logger.info("Creating database indexes...")
    await ensure_chat_indexes(db)
    logger.info("All indexes created successfully!")

    client.close()


if __name__ == "__main__":
    asyncio.run(create_indexes())
