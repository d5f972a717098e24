import logging
from urllib.parse import urlparse

from pymongo import MongoClient, ASCENDING, DESCENDING, TEXT
from pymongo.server_api import ServerApi
from pymongo.database import Database
from pymongo.collection import Collection

import config
from db.repository import MongoRepository

logger = logging.getLogger(__name__)

TODO_COLLECTION = "todos"
USER_COLLECTION = "users"

# Fields that never leave the users collection unless explicitly requested
USER_PRIVATE_FIELDS = (
    "password",
    "emailVerificationToken",
    "passwordResetToken",
    "passwordResetExpires",
)
USER_DEFAULT_PROJECTION = {field: 0 for field in USER_PRIVATE_FIELDS}


class DatabaseClient:
    """
    A singleton class to manage the MongoDB client connection.
    """
    client: MongoClient | None = None
    db: Database | None = None

    def connect(self):
        """
        Establishes the connection to MongoDB.
        """
        uri = config.MONGODB_URI
        if not uri:
            raise RuntimeError("MONGODB_URI is not configured")

        if self.client is None:
            self.client = MongoClient(uri, server_api=ServerApi('1'), tz_aware=True)
            try:
                self.client.admin.command('ping')
                # Only host and database name; the URI may carry credentials
                logger.info(
                    "Connected to MongoDB at %s/%s",
                    urlparse(uri).hostname,
                    config.MONGODB_DB_NAME,
                )
                self.db = self.client[config.MONGODB_DB_NAME]
            except Exception as e:
                logger.error("Failed to connect to MongoDB: %s", e)
                self.client.close()
                self.client = None
                self.db = None
                raise

    def get_database(self) -> Database:
        """
        Returns the database instance.
        """
        if self.db is None:
            self.connect()
        return self.db

    def get_todo_collection(self) -> Collection:
        return self.get_database()[TODO_COLLECTION]

    def get_user_collection(self) -> Collection:
        return self.get_database()[USER_COLLECTION]

    def close(self):
        """
        Closes the MongoDB connection.
        """
        if self.client:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed.")


def ensure_indexes(db: Database) -> None:
    """
    Creates the indexes both collections rely on. Safe to call repeatedly.

    The unique indexes on users are what enforce username/email uniqueness
    under concurrent writers.
    """
    todos = db[TODO_COLLECTION]
    todos.create_index([("completed", ASCENDING), ("priority", DESCENDING)])
    todos.create_index("dueDate")
    todos.create_index("createdBy")
    todos.create_index("category")
    todos.create_index("tags")
    todos.create_index([("title", TEXT), ("description", TEXT)])

    users = db[USER_COLLECTION]
    users.create_index("username", unique=True)
    users.create_index("email", unique=True)
    users.create_index("isActive")
    users.create_index([("createdAt", DESCENDING)])


def todo_repository(collection: Collection) -> MongoRepository:
    return MongoRepository(collection, resource="Todo")


def user_repository(collection: Collection) -> MongoRepository:
    return MongoRepository(
        collection,
        resource="User",
        default_projection=USER_DEFAULT_PROJECTION,
        unique_fields=("username", "email"),
    )


# Create a single instance of the database client
# This instance will be shared across the application
db_client = DatabaseClient()

# Helper functions to easily access database and repositories in your routes
def get_database() -> Database:
    """Get the database instance"""
    return db_client.get_database()

def get_todo_repository() -> MongoRepository:
    """Repository over the todos collection"""
    return todo_repository(db_client.get_todo_collection())

def get_user_repository() -> MongoRepository:
    """Repository over the users collection (private fields hidden by default)"""
    return user_repository(db_client.get_user_collection())
