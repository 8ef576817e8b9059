"""
Generic Repository Base Class
DRY foundation for async CRUD operations on MongoDB collections.
"""
from typing import Generic, TypeVar, Type, Optional, List, Dict, Any
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase, AsyncIOMotorClientSession
from bson import ObjectId
from bson.errors import InvalidId

from ..models.base import MongoBaseModel
from ..utils.observability import logger

# Generic type for domain models
T = TypeVar("T", bound=MongoBaseModel)


def to_object_id(document_id: str) -> Optional[ObjectId]:
    """Parse a string id; None if it is not a valid ObjectId."""
    try:
        return ObjectId(document_id)
    except (InvalidId, TypeError):
        return None


class BaseRepository(Generic[T]):
    """
    Generic async repository for MongoDB collections.
    Provides type-safe CRUD operations for domain models.

    Usage:
        class MessageRepository(BaseRepository[Message]):
            def __init__(self, database: AsyncIOMotorDatabase):
                super().__init__(database, "messages", Message)
    """

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        collection_name: str,
        model_class: Type[T]
    ):
        """
        Initialize repository with database connection and model type.

        Args:
            database: Motor database instance
            collection_name: MongoDB collection name
            model_class: Pydantic model class for type safety
        """
        self.database = database
        self.collection: AsyncIOMotorCollection = database[collection_name]
        self.model_class = model_class
        self.collection_name = collection_name

    async def create(
        self,
        document: T,
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> T:
        """
        Insert a new document into the collection.

        Timestamps are kept as given so callers control queue ordering.

        Args:
            document: Domain model instance to persist
            session: Optional session for multi-document transactions

        Returns:
            The created document with `_id` populated

        Raises:
            pymongo.errors.DuplicateKeyError: If unique constraint violated
        """
        doc_dict = document.model_dump(
            by_alias=True,
            exclude={"id"},
            exclude_none=True)

        result = await self.collection.insert_one(doc_dict, session=session)

        logger.debug(
            f"Created document in {self.collection_name}",
            extra={"document_id": str(result.inserted_id)}
        )

        # Populate the _id field
        document.id = str(result.inserted_id)
        return document

    async def find_by_id(self, document_id: str) -> Optional[T]:
        """
        Retrieve a document by its MongoDB ObjectId.

        Args:
            document_id: String representation of ObjectId

        Returns:
            Domain model instance or None if not found
        """
        object_id = to_object_id(document_id)
        if object_id is None:
            return None

        doc = await self.collection.find_one({"_id": object_id})
        if doc is None:
            return None

        return self._to_model(doc)

    async def find_many(
        self,
        filter_dict: Dict[str, Any],
        limit: int = 100,
        skip: int = 0,
        sort: Optional[List[tuple]] = None
    ) -> List[T]:
        """
        Retrieve multiple documents matching the filter.

        Args:
            filter_dict: MongoDB query filter
            limit: Maximum number of documents to return
            skip: Number of documents to skip (pagination)
            sort: List of (field, direction) tuples for sorting

        Returns:
            List of domain model instances
        """
        cursor = self.collection.find(filter_dict).skip(skip).limit(limit)

        if sort:
            cursor = cursor.sort(sort)

        docs = await cursor.to_list(length=limit)

        return [self._to_model(doc) for doc in docs]

    async def update_where(
        self,
        document_id: str,
        expected: Dict[str, Any],
        changes: Dict[str, Any],
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> bool:
        """
        Conditionally update one document.

        The update applies only if the document still matches ``expected``,
        making it a compare-and-swap on those fields.

        Returns:
            True if the document matched and was updated
        """
        object_id = to_object_id(document_id)
        if object_id is None:
            return False

        result = await self.collection.update_one(
            {"_id": object_id, **expected},
            {"$set": changes},
            session=session
        )

        if result.matched_count == 0:
            logger.debug(
                f"Conditional update skipped in {self.collection_name}",
                extra={"document_id": document_id, "expected": expected}
            )
            return False
        return True

    async def delete(
        self,
        document_id: str,
        session: Optional[AsyncIOMotorClientSession] = None
    ) -> bool:
        """
        Delete a document by its MongoDB ObjectId.

        Args:
            document_id: String representation of ObjectId

        Returns:
            True if document was deleted, False if not found
        """
        object_id = to_object_id(document_id)
        if object_id is None:
            return False

        result = await self.collection.delete_one({"_id": object_id}, session=session)

        if result.deleted_count > 0:
            logger.debug(
                f"Deleted document from {self.collection_name}",
                extra={"document_id": document_id}
            )
            return True

        return False

    async def count(self, filter_dict: Optional[Dict[str, Any]] = None) -> int:
        """
        Count documents matching the filter.

        Args:
            filter_dict: MongoDB query filter (None for all documents)

        Returns:
            Number of matching documents
        """
        filter_dict = filter_dict or {}
        return await self.collection.count_documents(filter_dict)

    def _to_model(self, doc: Dict[str, Any]) -> T:
        """
        Convert MongoDB document to Pydantic model instance.

        Args:
            doc: Raw MongoDB document dict

        Returns:
            Domain model instance
        """
        model_fields = self.model_class.model_fields.keys()

        cleaned_doc = {
            k: v for k, v in doc.items()
            if k in model_fields
        }
        # Convert ObjectId to string for Pydantic validation
        if "_id" in doc:
            cleaned_doc["_id"] = str(doc["_id"])

        return self.model_class.model_validate(cleaned_doc)
