from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for efficient queries."""
        try:
            # Users - looked up by Clerk id on every authenticated request
            await self.db.users.create_index("user_id", unique=True)
            try:
                await self.db.users.create_index("clerk_id", unique=True)
            except Exception:
                pass  # Index may already exist with different options
            await self.db.users.create_index("email")

            # Orders
            await self.db.orders.create_index("order_id", unique=True)
            await self.db.orders.create_index("order_number", unique=True)
            await self.db.orders.create_index([("clerk_id", 1), ("created_at", -1)])
            # Payment reminder scan
            await self.db.orders.create_index([("status", 1), ("final_notice_sent_at", 1)])

            # Settings (key/value)
            await self.db.settings.create_index("key", unique=True)

            # Translations - one per (order, file)
            await self.db.translations.create_index("translation_id", unique=True)
            try:
                await self.db.translations.create_index(
                    [("order_id", 1), ("file_name", 1)],
                    unique=True
                )
            except Exception:
                pass
            await self.db.translation_versions.create_index(
                [("translation_id", 1), ("version_number", -1)]
            )

            # Usage events
            await self.db.translation_usage.create_index([("order_id", 1), ("created_at", -1)])

            # Audit + message logs
            await self.db.audit_logs.create_index([("resource_type", 1), ("resource_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index("action")
            await self.db.message_logs.create_index([("order_id", 1), ("created_at", -1)])
            await self.db.message_logs.create_index([("status", 1), ("created_at", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

