"""
MongoDB access for exam documents.

The store is built once at startup and handed to request handlers; nothing
here keeps module-level connection state.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, AsyncMongoClient, ReturnDocument
from pymongo.errors import OperationFailure

from schemas import EXAM_KEY_FIELDS

logger = logging.getLogger(__name__)

COLLECTION_NAME = "exams"
EXAM_KEY_INDEX = "exam_key_unique"


def as_object_id(value: str) -> Optional[ObjectId]:
    """Parse an exam id; None when it can never match a stored document."""
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


class ExamStore:
    """Async CRUD over the exams collection."""

    def __init__(self, collection, client: Optional[AsyncMongoClient] = None):
        self.collection = collection
        self.client = client

    @classmethod
    async def connect(cls, uri: str, db_name: str, timeout_ms: int = 5000) -> "ExamStore":
        client = AsyncMongoClient(uri, serverSelectionTimeoutMS=timeout_ms)
        try:
            await client.admin.command("ping")
        except Exception:
            await client.close()
            raise
        logger.info("Connected to MongoDB database %s", db_name)
        store = cls(client[db_name][COLLECTION_NAME], client=client)
        await store.ensure_indexes()
        return store

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
            self.client = None
            logger.info("MongoDB connection closed")

    async def ensure_indexes(self) -> None:
        # Existing duplicate tuples block the unique index; lookups by
        # metadata then act on the first match the server returns.
        try:
            await self.collection.create_index(
                [(name, ASCENDING) for name in EXAM_KEY_FIELDS],
                unique=True,
                name=EXAM_KEY_INDEX,
            )
        except OperationFailure as exc:
            logger.warning("Could not create unique exam key index: %s", exc)

    async def list_exams(self) -> List[Dict[str, Any]]:
        return await self.collection.find().to_list(None)

    async def get_exam(self, exam_id: str) -> Optional[Dict[str, Any]]:
        oid = as_object_id(exam_id)
        if oid is None:
            return None
        return await self.collection.find_one({"_id": oid})

    async def find_by_key(self, key: Dict[str, str]) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one(key)

    async def insert_exam(self, data: Dict[str, Any]) -> Dict[str, Any]:
        doc = dict(data)
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    async def update_exam(self, exam_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        oid = as_object_id(exam_id)
        if oid is None:
            return None
        if not fields:
            return await self.collection.find_one({"_id": oid})
        return await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    async def delete_exam(self, exam_id: str) -> Optional[Dict[str, Any]]:
        oid = as_object_id(exam_id)
        if oid is None:
            return None
        return await self.collection.find_one_and_delete({"_id": oid})

    async def push_question(self, key: Dict[str, str], question: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one_and_update(
            key,
            {"$push": {"exam": question}},
            return_document=ReturnDocument.AFTER,
        )

    async def replace_questions(self, exam_id: ObjectId, questions: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one_and_update(
            {"_id": exam_id},
            {"$set": {"exam": questions}},
            return_document=ReturnDocument.AFTER,
        )
