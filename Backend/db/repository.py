"""
Thin storage driver over a pymongo collection.

Every entity operation goes through one of these methods, so this is the
one place where driver exceptions are turned into the API's error types.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from models.errors import ConflictError, InternalError, ValidationError

logger = logging.getLogger(__name__)

SortSpec = Sequence[Tuple[str, int]]


def parse_object_id(value: Any, field: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError(field=field, reason=f"'{value}' is not a valid ObjectId.")


def to_bson_datetimes(value: Any) -> Any:
    """
    BSON datetimes are UTC without an offset: aware datetimes (in documents
    and filters alike) are converted to naive UTC before they reach the driver.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, Mapping):
        return {key: to_bson_datetimes(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_bson_datetimes(item) for item in value]
    return value


class MongoRepository:
    """
    CRUD access to one collection.

    `default_projection` is applied to every read unless the caller asks for
    `include_private=True`. `unique_fields` names the fields guarded by unique
    indexes so duplicate-key failures can be attributed to a field.
    """

    def __init__(
        self,
        collection: Collection,
        resource: str = "Record",
        default_projection: Optional[Mapping[str, int]] = None,
        unique_fields: Iterable[str] = (),
    ):
        self.collection = collection
        self.resource = resource
        self.default_projection = dict(default_projection) if default_projection else None
        self.unique_fields = tuple(unique_fields)

    # --- helpers ---

    def _projection(self, include_private: bool) -> Optional[dict]:
        return None if include_private else self.default_projection

    def _duplicate_field(self, exc: DuplicateKeyError, doc: Mapping[str, Any]) -> str:
        key_value = (exc.details or {}).get("keyValue")
        if key_value:
            return next(iter(key_value))
        for field in self.unique_fields:
            if field in doc and self.collection.count_documents({field: doc[field]}, limit=1):
                return field
        return self.unique_fields[0] if self.unique_fields else "id"

    @contextmanager
    def _driver_errors(self, operation: str, doc: Optional[Mapping[str, Any]] = None):
        try:
            yield
        except DuplicateKeyError as e:
            raise ConflictError(field=self._duplicate_field(e, doc or {})) from e
        except PyMongoError as e:
            logger.exception("%s %s failed", self.resource, operation)
            raise InternalError() from e

    # --- operations ---

    def insert(self, doc: Mapping[str, Any], now: datetime) -> dict:
        """Inserts `doc` stamped with createdAt/updatedAt and returns the stored record."""
        to_insert = to_bson_datetimes({**doc, "createdAt": now, "updatedAt": now})
        with self._driver_errors("insert", to_insert):
            result = self.collection.insert_one(to_insert)
            if not result.acknowledged:
                logger.error("%s insert was not acknowledged", self.resource)
                raise InternalError(f"Failed to insert {self.resource.lower()} into database.")
            return self.collection.find_one({"_id": result.inserted_id}, self.default_projection)

    def find_by_id(self, id: Any, include_private: bool = False) -> Optional[dict]:
        object_id = parse_object_id(id)
        with self._driver_errors("find_by_id"):
            return self.collection.find_one({"_id": object_id}, self._projection(include_private))

    def find_one(self, filter: Mapping[str, Any], include_private: bool = False) -> Optional[dict]:
        with self._driver_errors("find_one"):
            return self.collection.find_one(to_bson_datetimes(filter), self._projection(include_private))

    def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        include_private: bool = False,
    ) -> List[dict]:
        with self._driver_errors("find"):
            cursor = self.collection.find(to_bson_datetimes(filter or {}), self._projection(include_private))
            if sort:
                cursor = cursor.sort(list(sort))
            return list(cursor)

    def update_by_id(
        self,
        id: Any,
        patch: Mapping[str, Any],
        now: datetime,
        unset: Iterable[str] = (),
        return_updated: bool = True,
        match: Optional[Mapping[str, Any]] = None,
    ) -> Optional[dict]:
        """
        Applies `$set: patch` (plus updatedAt) and `$unset` for the given keys.
        Returns the document after (or before) the update, or None if absent.

        `match` adds conditions to the id lookup; the update is skipped (and
        None returned) when the stored document no longer satisfies them.
        """
        object_id = parse_object_id(id)
        update: dict[str, Any] = {"$set": to_bson_datetimes({**patch, "updatedAt": now})}
        unset = list(unset)
        if unset:
            update["$unset"] = {key: "" for key in unset}
        with self._driver_errors("update", patch):
            return self.collection.find_one_and_update(
                {**to_bson_datetimes(match or {}), "_id": object_id},
                update,
                projection=self.default_projection,
                return_document=ReturnDocument.AFTER if return_updated else ReturnDocument.BEFORE,
            )

    def delete_by_id(self, id: Any) -> Optional[dict]:
        object_id = parse_object_id(id)
        with self._driver_errors("delete"):
            return self.collection.find_one_and_delete(
                {"_id": object_id}, projection=self.default_projection
            )

    def count(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        with self._driver_errors("count"):
            return self.collection.count_documents(to_bson_datetimes(filter or {}))
