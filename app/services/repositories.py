"""
Repository layer abstracting storage (SQLAlchemy vs Firebase Firestore).

Both paths return the same Pydantic records so services never branch on the
backend. Seating plans are single documents: tables are always written as a
whole array through ``SeatingPlanRepo.replace_tables``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.api_core import exceptions as gcp_exceptions
from firebase_admin import firestore
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import DuplicateContact
from app.models import Guest, SeatingPlan
from app.models.guest import new_guest_id
from app.schemas.guest import GuestCreate, GuestResponse
from app.schemas.seating import PlanDefaults, SeatingPlanRecord, SeatingTable
from app.services.firebase_client import (
    GUEST_PHONES_COLLECTION,
    GUESTS_COLLECTION,
    SEATING_PLANS_COLLECTION,
    get_firestore_client,
)

logger = logging.getLogger(__name__)


def use_firestore() -> bool:
    return settings.USE_FIREBASE is True


# -------- Guest repository --------

def _phone_key(phone: str) -> str:
    # Firestore document ids cannot contain "/"
    return phone.replace("/", "_")


def _guest_from_doc(doc) -> GuestResponse:
    data = doc.to_dict()
    data["id"] = doc.id
    return GuestResponse(**data)


class GuestRepo:
    @staticmethod
    def create(db: Session, data: GuestCreate) -> GuestResponse:
        if use_firestore():
            return GuestRepo.create_fs(data)
        return GuestRepo.create_sql(db, data)

    @staticmethod
    def update(db: Session, guest_id: str, fields: Dict[str, Any]) -> Optional[GuestResponse]:
        if use_firestore():
            return GuestRepo.update_fs(guest_id, fields)
        return GuestRepo.update_sql(db, guest_id, fields)

    @staticmethod
    def delete(db: Session, guest_id: str) -> bool:
        if use_firestore():
            return GuestRepo.delete_fs(guest_id)
        return GuestRepo.delete_sql(db, guest_id)

    @staticmethod
    def list_all(db: Session) -> List[GuestResponse]:
        if use_firestore():
            return GuestRepo.list_fs()
        return GuestRepo.list_sql(db)

    @staticmethod
    def find_by_id(db: Session, guest_id: str) -> Optional[GuestResponse]:
        if use_firestore():
            return GuestRepo.find_by_id_fs(guest_id)
        return GuestRepo.find_by_id_sql(db, guest_id)

    @staticmethod
    def mark_invited(db: Session, guest_id: str) -> Optional[GuestResponse]:
        return GuestRepo.update(db, guest_id, {"last_invite_sent_at": datetime.utcnow()})

    # SQLAlchemy shape: one row per guest, unique index on phone

    @staticmethod
    def create_sql(db: Session, data: GuestCreate) -> GuestResponse:
        if db.query(Guest).filter(Guest.phone == data.phone).first():
            raise DuplicateContact(data.phone)

        now = datetime.utcnow()
        guest = Guest(
            id=new_guest_id(),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            party_size=data.party_size,
            attending=None,
            language=data.language,
            last_invite_sent_at=None,
            created_at=now,
            updated_at=now,
        )
        db.add(guest)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateContact(data.phone)
        db.refresh(guest)
        return GuestResponse.model_validate(guest)

    @staticmethod
    def update_sql(db: Session, guest_id: str, fields: Dict[str, Any]) -> Optional[GuestResponse]:
        guest = db.query(Guest).filter(Guest.id == guest_id).first()
        if not guest:
            return None

        phone = fields.get("phone")
        if phone and phone != guest.phone:
            clash = db.query(Guest).filter(Guest.phone == phone, Guest.id != guest_id).first()
            if clash:
                raise DuplicateContact(phone)

        for name, value in fields.items():
            setattr(guest, name, value)
        guest.updated_at = datetime.utcnow()

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateContact(phone or guest.phone)
        db.refresh(guest)
        return GuestResponse.model_validate(guest)

    @staticmethod
    def delete_sql(db: Session, guest_id: str) -> bool:
        removed = db.query(Guest).filter(Guest.id == guest_id).delete(synchronize_session=False)
        db.commit()
        return removed > 0

    @staticmethod
    def list_sql(db: Session) -> List[GuestResponse]:
        guests = db.query(Guest).order_by(Guest.updated_at.desc()).all()
        return [GuestResponse.model_validate(guest) for guest in guests]

    @staticmethod
    def find_by_id_sql(db: Session, guest_id: str) -> Optional[GuestResponse]:
        guest = db.query(Guest).filter(Guest.id == guest_id).first()
        return GuestResponse.model_validate(guest) if guest else None

    # Firestore shape: guests/{id}, plus guest_phones/{phone} -> {guest_id}
    # as the uniqueness index. Both documents are written in one batch.

    @staticmethod
    def create_fs(data: GuestCreate) -> GuestResponse:
        fs = get_firestore_client()
        guest_id = new_guest_id()
        now = datetime.utcnow()
        record = {
            "first_name": data.first_name,
            "last_name": data.last_name,
            "phone": data.phone,
            "party_size": data.party_size,
            "attending": None,
            "language": data.language,
            "last_invite_sent_at": None,
            "created_at": now,
            "updated_at": now,
        }

        batch = fs.batch()
        batch.create(fs.collection(GUEST_PHONES_COLLECTION).document(_phone_key(data.phone)), {"guest_id": guest_id})
        batch.create(fs.collection(GUESTS_COLLECTION).document(guest_id), record)
        try:
            batch.commit()
        except gcp_exceptions.AlreadyExists:
            raise DuplicateContact(data.phone)

        return GuestResponse(id=guest_id, **record)

    @staticmethod
    def update_fs(guest_id: str, fields: Dict[str, Any]) -> Optional[GuestResponse]:
        fs = get_firestore_client()
        guest_ref = fs.collection(GUESTS_COLLECTION).document(guest_id)
        snapshot = guest_ref.get()
        if not snapshot.exists:
            return None

        current = snapshot.to_dict()
        batch = fs.batch()
        phone = fields.get("phone")
        if phone and phone != current.get("phone"):
            phones = fs.collection(GUEST_PHONES_COLLECTION)
            batch.create(phones.document(_phone_key(phone)), {"guest_id": guest_id})
            batch.delete(phones.document(_phone_key(current["phone"])))

        batch.update(guest_ref, {**fields, "updated_at": datetime.utcnow()})
        try:
            batch.commit()
        except gcp_exceptions.AlreadyExists:
            raise DuplicateContact(phone)

        return _guest_from_doc(guest_ref.get())

    @staticmethod
    def delete_fs(guest_id: str) -> bool:
        fs = get_firestore_client()
        guest_ref = fs.collection(GUESTS_COLLECTION).document(guest_id)
        snapshot = guest_ref.get()
        if not snapshot.exists:
            return False

        batch = fs.batch()
        batch.delete(guest_ref)
        batch.delete(fs.collection(GUEST_PHONES_COLLECTION).document(_phone_key(snapshot.to_dict()["phone"])))
        batch.commit()
        return True

    @staticmethod
    def list_fs() -> List[GuestResponse]:
        fs = get_firestore_client()
        docs = fs.collection(GUESTS_COLLECTION).order_by("updated_at", direction=firestore.Query.DESCENDING).stream()
        return [_guest_from_doc(doc) for doc in docs]

    @staticmethod
    def find_by_id_fs(guest_id: str) -> Optional[GuestResponse]:
        fs = get_firestore_client()
        snapshot = fs.collection(GUESTS_COLLECTION).document(guest_id).get()
        return _guest_from_doc(snapshot) if snapshot.exists else None


# -------- Seating plan repository --------

def _tables_payload(tables: List[SeatingTable]) -> List[Dict[str, Any]]:
    return [table.model_dump() for table in tables]


class SeatingPlanRepo:
    @staticmethod
    def get_by_slug(db: Session, slug: str) -> Optional[SeatingPlanRecord]:
        if use_firestore():
            return SeatingPlanRepo.get_by_slug_fs(slug)
        return SeatingPlanRepo.get_by_slug_sql(db, slug)

    @staticmethod
    def get_or_create(db: Session, defaults: PlanDefaults) -> SeatingPlanRecord:
        if use_firestore():
            return SeatingPlanRepo.get_or_create_fs(defaults)
        return SeatingPlanRepo.get_or_create_sql(db, defaults)

    @staticmethod
    def update_details(
        db: Session,
        slug: str,
        name: Optional[str] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
        tables: Optional[List[SeatingTable]] = None,
    ) -> Optional[SeatingPlanRecord]:
        """Update plan details, optionally rewriting the table array in the same write"""
        fields: Dict[str, Any] = {}
        if name is not None:
            fields["name"] = name
        if width is not None:
            fields["width"] = width
        if height is not None:
            fields["height"] = height
        if tables is not None:
            fields["tables"] = _tables_payload(tables)

        if use_firestore():
            return SeatingPlanRepo.update_fs(slug, fields)
        return SeatingPlanRepo.update_sql(db, slug, fields)

    @staticmethod
    def replace_tables(db: Session, slug: str, tables: List[SeatingTable]) -> Optional[SeatingPlanRecord]:
        """Overwrite the plan's whole table array in a single write"""
        fields = {"tables": _tables_payload(tables)}
        if use_firestore():
            return SeatingPlanRepo.update_fs(slug, fields)
        return SeatingPlanRepo.update_sql(db, slug, fields)

    # SQLAlchemy shape: one row per plan, tables in a JSON column

    @staticmethod
    def get_by_slug_sql(db: Session, slug: str) -> Optional[SeatingPlanRecord]:
        plan = db.query(SeatingPlan).filter(SeatingPlan.slug == slug).first()
        return SeatingPlanRecord.model_validate(plan) if plan else None

    @staticmethod
    def get_or_create_sql(db: Session, defaults: PlanDefaults) -> SeatingPlanRecord:
        existing = SeatingPlanRepo.get_by_slug_sql(db, defaults.slug)
        if existing:
            return existing

        now = datetime.utcnow()
        db.add(SeatingPlan(
            slug=defaults.slug,
            name=defaults.name,
            width=defaults.width,
            height=defaults.height,
            tables=[],
            created_at=now,
            updated_at=now,
        ))
        try:
            db.commit()
            logger.info(f"Seating plan '{defaults.slug}' created")
        except IntegrityError:
            # Another request created the plan first
            db.rollback()
            logger.info(f"Seating plan '{defaults.slug}' was created concurrently, refetching")

        created = SeatingPlanRepo.get_by_slug_sql(db, defaults.slug)
        if created is None:
            raise RuntimeError(f"Seating plan '{defaults.slug}' could not be created")
        return created

    @staticmethod
    def update_sql(db: Session, slug: str, fields: Dict[str, Any]) -> Optional[SeatingPlanRecord]:
        values = {getattr(SeatingPlan, name): value for name, value in fields.items()}
        values[SeatingPlan.updated_at] = datetime.utcnow()
        updated = db.query(SeatingPlan).filter(SeatingPlan.slug == slug).update(values, synchronize_session=False)
        db.commit()
        if not updated:
            return None
        return SeatingPlanRepo.get_by_slug_sql(db, slug)

    # Firestore shape: seating_plans/{slug}

    @staticmethod
    def get_by_slug_fs(slug: str) -> Optional[SeatingPlanRecord]:
        fs = get_firestore_client()
        snapshot = fs.collection(SEATING_PLANS_COLLECTION).document(slug).get()
        return SeatingPlanRecord(**snapshot.to_dict()) if snapshot.exists else None

    @staticmethod
    def get_or_create_fs(defaults: PlanDefaults) -> SeatingPlanRecord:
        existing = SeatingPlanRepo.get_by_slug_fs(defaults.slug)
        if existing:
            return existing

        fs = get_firestore_client()
        now = datetime.utcnow()
        try:
            fs.collection(SEATING_PLANS_COLLECTION).document(defaults.slug).create({
                "slug": defaults.slug,
                "name": defaults.name,
                "width": defaults.width,
                "height": defaults.height,
                "tables": [],
                "created_at": now,
                "updated_at": now,
            })
            logger.info(f"Seating plan '{defaults.slug}' created")
        except gcp_exceptions.AlreadyExists:
            logger.info(f"Seating plan '{defaults.slug}' was created concurrently, refetching")

        created = SeatingPlanRepo.get_by_slug_fs(defaults.slug)
        if created is None:
            raise RuntimeError(f"Seating plan '{defaults.slug}' could not be created")
        return created

    @staticmethod
    def update_fs(slug: str, fields: Dict[str, Any]) -> Optional[SeatingPlanRecord]:
        fs = get_firestore_client()
        ref = fs.collection(SEATING_PLANS_COLLECTION).document(slug)
        try:
            ref.update({**fields, "updated_at": datetime.utcnow()})
        except gcp_exceptions.NotFound:
            return None
        return SeatingPlanRepo.get_by_slug_fs(slug)
