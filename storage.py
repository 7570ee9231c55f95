"""
Feedback store: customer ledgers, visit dedup, dashboard queries

Two collections are written on each submission, "feedback" (one document
per phone number holding every visit) and "customercard" (visit counters).
The two writes are independent; a failure between them leaves the customer
card one visit behind.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import analytics
from database import CUSTOMER_COLLECTION, FEEDBACK_COLLECTION, create_document, get_documents
from errors import DuplicateSubmission, NotFound
from schemas import RATING_CATEGORIES, AnalyticsData, CustomerCard, Feedback, FeedbackCreate, Visit

logger = logging.getLogger(__name__)

# top-level fields of the old one-visit-per-document shape
LEGACY_VISIT_FIELDS = ("location", "dineType", "ratings", "note", "staffName", "staffComment", "createdAt", "dateKey")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """pymongo hands back naive UTC datetimes unless the client is tz_aware."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def date_key(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%d")


def is_legacy(raw: Dict[str, Any]) -> bool:
    return not raw.get("visits") and bool(raw.get("location"))


def _legacy_visit(raw: Dict[str, Any]) -> Dict[str, Any]:
    created = as_utc(raw.get("createdAt")) or utc_now()
    return {
        "location": raw["location"],
        "dineType": raw.get("dineType") or "dine_in",
        "ratings": raw.get("ratings") or {c: 5 for c in RATING_CATEGORIES},
        "note": raw.get("note") or "",
        "staffName": raw.get("staffName") or "",
        "staffComment": raw.get("staffComment") or "",
        "createdAt": created,
        "dateKey": raw.get("dateKey") or date_key(created),
    }


def normalize_document(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Feedback document with tz-aware datetimes; legacy flat documents get a one-visit list."""
    visits = [_legacy_visit(raw)] if is_legacy(raw) else raw.get("visits") or []
    return {
        "_id": raw["_id"],
        "name": raw.get("name"),
        "phoneNumber": raw.get("phoneNumber"),
        "contactedAt": as_utc(raw.get("contactedAt")),
        "contactedBy": raw.get("contactedBy") or None,
        "visits": [
            {
                "location": v.get("location"),
                "dineType": v.get("dineType"),
                "ratings": v.get("ratings"),
                "note": v.get("note") or "",
                "staffName": v.get("staffName") or "",
                "staffComment": v.get("staffComment") or "",
                "createdAt": as_utc(v.get("createdAt")),
                "dateKey": v.get("dateKey"),
            }
            for v in visits
        ],
    }


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_feedback(doc: Dict[str, Any]) -> Dict[str, Any]:
    """JSON-ready view of a normalized feedback document."""
    return {
        "_id": str(doc["_id"]),
        "name": doc["name"],
        "phoneNumber": doc["phoneNumber"],
        "contactedAt": _isoformat(doc["contactedAt"]),
        "contactedBy": doc["contactedBy"],
        "visits": [dict(v, createdAt=_isoformat(v["createdAt"])) for v in doc["visits"]],
    }


def _visit_star(visit: Dict[str, Any]) -> Optional[int]:
    average = analytics.visit_average(visit.get("ratings") or {})
    return None if average is None else int(analytics.round_half_up(average))


class FeedbackStore:
    """Feedback and customer-card persistence on top of a pymongo Database."""

    def __init__(self, db: Database, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock
        self.feedback = db[FEEDBACK_COLLECTION]
        self.customers = db[CUSTOMER_COLLECTION]

    # ----- submission -----

    def create_feedback(self, payload: FeedbackCreate) -> Dict[str, Any]:
        """
        Record one visit for the customer identified by payload.phoneNumber.

        Raises DuplicateSubmission when that customer already has a visit
        dated today (UTC). Returns {"feedback": ..., "customerCard": ...}.
        """
        now = self.clock()
        today = date_key(now)
        visit = Visit(
            location=payload.location,
            dineType=payload.dineType,
            ratings=payload.ratings,
            note=payload.note,
            staffName=payload.staffName,
            staffComment=payload.staffComment,
            createdAt=now,
            dateKey=today,
        )

        feedback = self._append_visit(payload, visit)
        card = self._record_customer_visit(payload, feedback["_id"], now)

        logger.info(
            "Feedback recorded",
            extra={"feedback_id": str(feedback["_id"]), "date_key": today, "total_visits": card.totalVisits},
        )
        return {
            "feedback": serialize_feedback(normalize_document(feedback)),
            "customerCard": {
                "totalVisits": card.totalVisits,
                "firstVisitDate": _isoformat(as_utc(card.firstVisitDate)),
                "lastVisitDate": _isoformat(as_utc(card.lastVisitDate)),
            },
        }

    def _append_visit(self, payload: FeedbackCreate, visit: Visit) -> Dict[str, Any]:
        existing = self.feedback.find_one({"phoneNumber": payload.phoneNumber})

        if existing is None:
            data = Feedback(
                name=payload.name,
                phoneNumber=payload.phoneNumber,
                visits=[visit],
                lastVisitAt=visit.createdAt,
            )
            try:
                inserted_id = create_document(FEEDBACK_COLLECTION, data, database=self.db)
            except DuplicateKeyError:
                # a concurrent first submission for this phone number won the insert
                logger.info("Duplicate submission rejected", extra={"date_key": visit.dateKey})
                raise DuplicateSubmission()
            return self.feedback.find_one({"_id": ObjectId(inserted_id)})

        if is_legacy(existing):
            self._migrate_document(existing)

        # check-and-append in one update so two same-day requests cannot both append
        updated = self.feedback.find_one_and_update(
            {"_id": existing["_id"], "visits.dateKey": {"$ne": visit.dateKey}},
            {
                "$push": {"visits": visit.model_dump()},
                "$set": {"name": payload.name, "lastVisitAt": visit.createdAt},
            },
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            logger.info(
                "Duplicate submission rejected",
                extra={"feedback_id": str(existing["_id"]), "date_key": visit.dateKey},
            )
            raise DuplicateSubmission()
        return updated

    def _record_customer_visit(self, payload: FeedbackCreate, feedback_id: ObjectId, now: datetime) -> CustomerCard:
        doc = self.customers.find_one_and_update(
            {"phoneNumber": payload.phoneNumber},
            {
                "$inc": {"totalVisits": 1},
                "$set": {"name": payload.name, "lastVisitDate": now},
                "$setOnInsert": {"firstVisitDate": now},
                "$addToSet": {"visits": feedback_id},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return CustomerCard(
            phoneNumber=doc["phoneNumber"],
            name=doc["name"],
            totalVisits=doc["totalVisits"],
            firstVisitDate=doc["firstVisitDate"],
            lastVisitDate=doc["lastVisitDate"],
            visits=[str(v) for v in doc.get("visits", [])],
        )

    # ----- dashboard queries -----

    def get_feedback(
        self,
        page: int,
        limit: int,
        search: Optional[str] = None,
        date: Optional[str] = None,
        rating: Optional[int] = None,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """
        Page through feedback, newest visit first.

        With `date` or `rating`, the visits of each document are narrowed to
        the matching ones and the total counts the narrowed list. Without
        them, paging and counting happen in the database on whole documents.
        """
        query: Dict[str, Any] = {}
        if search:
            pattern = {"$regex": re.escape(search), "$options": "i"}
            query["$or"] = [{"name": pattern}, {"phoneNumber": pattern}]
        if date:
            query["visits.dateKey"] = date

        skip = (page - 1) * limit
        cursor = self.feedback.find(query).sort([("lastVisitAt", DESCENDING), ("_id", DESCENDING)])

        if not date and rating is None:
            total = self.feedback.count_documents(query)
            docs = [serialize_feedback(normalize_document(d)) for d in cursor.skip(skip).limit(limit)]
            return docs, total

        results = []
        for raw in cursor:
            doc = normalize_document(raw)
            visits = doc["visits"]
            if date:
                visits = [v for v in visits if v["dateKey"] == date]
            if rating is not None:
                visits = [v for v in visits if _visit_star(v) == rating]
            if visits:
                doc["visits"] = visits
                results.append(serialize_feedback(doc))
        return results[skip:skip + limit], len(results)

    def mark_contacted(self, feedback_id: str, contacted_by: str) -> Dict[str, Any]:
        """Stamp a follow-up on a feedback ledger; later calls overwrite earlier ones."""
        try:
            oid = ObjectId(feedback_id)
        except (InvalidId, TypeError):
            raise NotFound("Feedback not found")

        updated = self.feedback.find_one_and_update(
            {"_id": oid},
            {"$set": {"contactedBy": contacted_by, "contactedAt": self.clock()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFound("Feedback not found")

        logger.info("Feedback marked contacted", extra={"feedback_id": feedback_id, "contacted_by": contacted_by})
        return serialize_feedback(normalize_document(updated))

    def get_analytics(self, period: str) -> AnalyticsData:
        since = analytics.window_start(period, self.clock())
        # date keys narrow the scan; createdAt decides membership
        query = {
            "$or": [
                {"visits.dateKey": {"$gte": date_key(since)}},
                {"location": {"$exists": True}},
            ]
        }
        docs = (normalize_document(raw) for raw in self.feedback.find(query))
        return analytics.summarize(docs, since)

    # ----- maintenance -----

    def _migrate_document(self, raw: Dict[str, Any]) -> None:
        visit = _legacy_visit(raw)
        self.feedback.update_one(
            {"_id": raw["_id"]},
            {
                "$set": {"visits": [visit], "lastVisitAt": visit["createdAt"]},
                "$unset": {field: "" for field in LEGACY_VISIT_FIELDS},
            },
        )

    def migrate_legacy_documents(self) -> int:
        """
        Bring documents from older deployments up to the current shape.

        Flat one-visit documents are rewritten into the visits shape, and
        visit-shape documents missing lastVisitAt get it from their newest
        visit. Returns how many documents changed.
        """
        query = {"$or": [{"location": {"$exists": True}}, {"lastVisitAt": None}]}
        migrated = 0
        for raw in get_documents(FEEDBACK_COLLECTION, query, database=self.db):
            if is_legacy(raw):
                self._migrate_document(raw)
            elif raw.get("visits") and raw.get("lastVisitAt") is None:
                newest = max(as_utc(v["createdAt"]) for v in raw["visits"])
                self.feedback.update_one({"_id": raw["_id"]}, {"$set": {"lastVisitAt": newest}})
            else:
                continue
            migrated += 1
        if migrated:
            logger.info("Migrated legacy feedback documents", extra={"count": migrated})
        return migrated
