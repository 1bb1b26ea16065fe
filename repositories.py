"""
Repository interfaces for the store and their MongoDB implementations.

The order workflow and the HTTP layer only talk to the abstract interfaces,
so tests can swap in other implementations through `get_repositories`.
"""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument

from database import create_document, get_db
from schemas import ORDER_STATUSES, TERMINAL_STATUSES

CANCELLABLE_STATUSES = tuple(s for s in ORDER_STATUSES if s not in TERMINAL_STATUSES and s != "cancelled")


@dataclass
class OrderFilter:
    user_id: Optional[ObjectId] = None
    search: str = ""


@dataclass
class ProductFilter:
    search: str = ""
    category_id: Optional[ObjectId] = None


# ---------- Interfaces ----------


class UserRepository(ABC):
    @abstractmethod
    def find_by_id(self, user_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[dict]: ...

    @abstractmethod
    def email_taken(self, email: str, exclude_id: Optional[ObjectId] = None) -> bool: ...

    @abstractmethod
    def create(self, data: dict) -> dict: ...

    @abstractmethod
    def update(self, user_id: ObjectId, fields: dict) -> Optional[dict]: ...


class CategoryRepository(ABC):
    @abstractmethod
    def find_all(self) -> List[dict]: ...

    @abstractmethod
    def find_by_id(self, category_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def create(self, data: dict) -> dict: ...

    @abstractmethod
    def delete(self, category_id: ObjectId) -> Optional[dict]: ...


class ProductRepository(ABC):
    @abstractmethod
    def find_by_id(self, product_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def find_by_ids(self, product_ids: Iterable[ObjectId]) -> List[dict]: ...

    @abstractmethod
    def find_by_filter(self, product_filter: ProductFilter) -> List[dict]: ...

    @abstractmethod
    def create(self, data: dict) -> dict: ...

    @abstractmethod
    def update(self, product_id: ObjectId, fields: dict) -> Optional[dict]: ...

    @abstractmethod
    def delete(self, product_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def update_stock(self, product_id: ObjectId, delta: int) -> Optional[dict]:
        """Atomically add `delta` to the stock count.

        Returns the updated product, or None when the product is missing or
        the stock would drop below zero (in which case nothing changes).
        """

    @abstractmethod
    def increment_views(self, product_id: ObjectId) -> Optional[dict]: ...


class OrderRepository(ABC):
    @abstractmethod
    def find_by_id(self, order_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def find_by_filter(self, order_filter: OrderFilter, skip: int = 0, limit: int = 0) -> List[dict]:
        """Orders matching the filter, newest first."""

    @abstractmethod
    def count(self, order_filter: OrderFilter) -> int: ...

    @abstractmethod
    def create(self, data: dict) -> dict: ...

    @abstractmethod
    def set_status(self, order_id: ObjectId, status: str) -> Optional[dict]: ...

    @abstractmethod
    def mark_cancelled(self, order_id: ObjectId) -> Optional[dict]:
        """Move the order to `cancelled` only if it is still cancellable.

        Returns the updated order, or None if it was missing or no longer cancellable.
        """

    @abstractmethod
    def delete(self, order_id: ObjectId) -> Optional[dict]: ...


@dataclass
class Repositories:
    users: UserRepository
    categories: CategoryRepository
    products: ProductRepository
    orders: OrderRepository


# ---------- MongoDB ----------


def _contains(text: str) -> dict:
    return {"$regex": re.escape(text), "$options": "i"}


class MongoUserRepository(UserRepository):
    def __init__(self, db):
        self.collection = db["user"]

    def find_by_id(self, user_id):
        return self.collection.find_one({"_id": user_id})

    def find_by_email(self, email):
        return self.collection.find_one({"email": email})

    def email_taken(self, email, exclude_id=None):
        query = {"email": email}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        return self.collection.count_documents(query, limit=1) > 0

    def create(self, data):
        inserted_id = self.collection.insert_one(dict(data)).inserted_id
        return self.find_by_id(inserted_id)

    def update(self, user_id, fields):
        fields = dict(fields, updated_at=datetime.utcnow())
        return self.collection.find_one_and_update(
            {"_id": user_id}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )


class MongoCategoryRepository(CategoryRepository):
    collection_name = "category"

    def __init__(self, db):
        self.db = db
        self.collection = db[self.collection_name]

    def find_all(self):
        return list(self.collection.find({}))

    def find_by_id(self, category_id):
        return self.collection.find_one({"_id": category_id})

    def create(self, data):
        inserted_id = create_document(self.collection_name, data, database=self.db)
        return self.find_by_id(ObjectId(inserted_id))

    def delete(self, category_id):
        return self.collection.find_one_and_delete({"_id": category_id})


class MongoProductRepository(ProductRepository):
    def __init__(self, db):
        self.collection = db["product"]

    def find_by_id(self, product_id):
        return self.collection.find_one({"_id": product_id})

    def find_by_ids(self, product_ids):
        return list(self.collection.find({"_id": {"$in": list(product_ids)}}))

    def find_by_filter(self, product_filter):
        query = {}
        if product_filter.search:
            query["$or"] = [
                {"title": _contains(product_filter.search)},
                {"description": _contains(product_filter.search)},
            ]
        if product_filter.category_id is not None:
            query["category"] = product_filter.category_id
        return list(self.collection.find(query))

    def create(self, data):
        inserted_id = self.collection.insert_one(dict(data)).inserted_id
        return self.find_by_id(inserted_id)

    def update(self, product_id, fields):
        fields = dict(fields, updated_at=datetime.utcnow())
        return self.collection.find_one_and_update(
            {"_id": product_id}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )

    def delete(self, product_id):
        return self.collection.find_one_and_delete({"_id": product_id})

    def update_stock(self, product_id, delta):
        query = {"_id": product_id}
        if delta < 0:
            query["count_in_stock"] = {"$gte": -delta}
        return self.collection.find_one_and_update(
            query, {"$inc": {"count_in_stock": delta}}, return_document=ReturnDocument.AFTER
        )

    def increment_views(self, product_id):
        return self.collection.find_one_and_update(
            {"_id": product_id}, {"$inc": {"views": 1}}, return_document=ReturnDocument.AFTER
        )


class MongoOrderRepository(OrderRepository):
    def __init__(self, db):
        self.collection = db["order"]

    @staticmethod
    def _query(order_filter):
        query = {}
        if order_filter.user_id is not None:
            query["user"] = order_filter.user_id
        if order_filter.search:
            query["$or"] = [{"status": _contains(order_filter.search)}]
        return query

    def find_by_id(self, order_id):
        return self.collection.find_one({"_id": order_id})

    def find_by_filter(self, order_filter, skip=0, limit=0):
        cursor = self.collection.find(self._query(order_filter)).sort("date", DESCENDING).skip(skip)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def count(self, order_filter):
        return self.collection.count_documents(self._query(order_filter))

    def create(self, data):
        inserted_id = self.collection.insert_one(dict(data)).inserted_id
        return self.find_by_id(inserted_id)

    def set_status(self, order_id, status):
        return self.collection.find_one_and_update(
            {"_id": order_id}, {"$set": {"status": status}}, return_document=ReturnDocument.AFTER
        )

    def mark_cancelled(self, order_id):
        return self.collection.find_one_and_update(
            {"_id": order_id, "status": {"$in": list(CANCELLABLE_STATUSES)}},
            {"$set": {"status": "cancelled"}},
            return_document=ReturnDocument.AFTER,
        )

    def delete(self, order_id):
        return self.collection.find_one_and_delete({"_id": order_id})


def mongo_repositories(db) -> Repositories:
    return Repositories(
        users=MongoUserRepository(db),
        categories=MongoCategoryRepository(db),
        products=MongoProductRepository(db),
        orders=MongoOrderRepository(db),
    )


def get_repositories() -> Repositories:
    """FastAPI dependency yielding the MongoDB-backed repositories."""
    return mongo_repositories(get_db())
