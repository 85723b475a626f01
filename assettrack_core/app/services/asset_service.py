"""
Asset Registry
==============
Creation, lookup, editing and deletion of asset records.

Assets are identified by a human-readable ``asset_id`` (AST-001) that is
either supplied by the caller or drawn from the "asset" sequence. The
``Assigned`` status belongs to the assignment ledger: it cannot be set or
cleared by a direct edit.
"""

import logging
from typing import Optional, List, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..models import Asset, AssetStatus, Assignment, MaintenanceRecord
from .exceptions import (
    ValidationError, AssetNotFound, DuplicateId, DuplicateSerial,
    AssetStatusLocked, duplicate_from_integrity_error
)
from .validation import coerce_enum, clamp_page, like_pattern, missing_fields
from .sequences import ASSET_ID_PATTERN, next_asset_id, preview_next_asset_id, reserve_identifier

logger = logging.getLogger(__name__)

ASSET_FIELDS = (
    "asset_id", "name", "category", "serial_number", "status",
    "purchase_date", "warranty_expiration", "department",
)
REQUIRED_ASSET_FIELDS = ("name", "category", "serial_number", "purchase_date")


def normalize_asset_id(value: str) -> str:
    """Trim and uppercase a caller-supplied asset ID and check its format."""
    normalized = str(value).strip().upper()
    if not ASSET_ID_PATTERN.match(normalized):
        raise ValidationError.single("asset_id", "Asset ID must match format AST-001")
    return normalized


class AssetService:
    """Service class for asset records"""

    @staticmethod
    def _check_required(data: dict, creating: bool):
        errors = missing_fields(data, REQUIRED_ASSET_FIELDS, creating)
        if errors:
            raise ValidationError(errors)

    @staticmethod
    def _ensure_unique(db: Session, asset_id: Optional[str], serial_number: Optional[str], exclude_id: Optional[int] = None):
        if asset_id:
            q = db.query(Asset.id).filter(Asset.asset_id == asset_id)
            if exclude_id:
                q = q.filter(Asset.id != exclude_id)
            if q.first():
                raise DuplicateId("Asset ID already exists")
        if serial_number:
            q = db.query(Asset.id).filter(Asset.serial_number == serial_number)
            if exclude_id:
                q = q.filter(Asset.id != exclude_id)
            if q.first():
                raise DuplicateSerial("Serial number already exists")

    @staticmethod
    def _flush(db: Session):
        try:
            db.flush()
        except IntegrityError as e:
            raise duplicate_from_integrity_error(e) from e

    @staticmethod
    def create_asset(db: Session, data: dict) -> Asset:
        """
        Register a new asset.

        A supplied asset_id is normalized and validated; otherwise one is
        drawn from the asset sequence. New assets start Available with an
        empty maintenance history unless another (non-Assigned) status is given.
        """
        data = {k: v for k, v in data.items() if k in ASSET_FIELDS}
        AssetService._check_required(data, creating=True)

        status = data.get("status") or AssetStatus.AVAILABLE
        status = coerce_enum(AssetStatus, status, "status")
        if status == AssetStatus.ASSIGNED:
            raise AssetStatusLocked("Assets become Assigned only through an assignment")

        serial_number = str(data["serial_number"]).strip()
        supplied_id = data.get("asset_id")
        asset_id = normalize_asset_id(supplied_id) if supplied_id else None
        AssetService._ensure_unique(db, asset_id, serial_number)

        if asset_id is None:
            asset_id = next_asset_id(db)
        else:
            reserve_identifier(db, asset_id)

        asset = Asset(
            asset_id=asset_id,
            name=str(data["name"]).strip(),
            category=data["category"],
            serial_number=serial_number,
            status=status,
            purchase_date=data["purchase_date"],
            warranty_expiration=data.get("warranty_expiration"),
            department=data.get("department"),
            maintenance_history=[],
        )
        db.add(asset)
        AssetService._flush(db)

        logger.info("Asset %s created (serial %s)", asset.asset_id, asset.serial_number)
        return asset

    @staticmethod
    def _filtered_query(db: Session, status: Optional[str] = None, category: Optional[str] = None):
        query = db.query(Asset)
        if status:
            query = query.filter(Asset.status == coerce_enum(AssetStatus, status, "status"))
        if category:
            query = query.filter(Asset.category == category)
        return query

    @staticmethod
    def list_assets(db: Session, status: Optional[str] = None, category: Optional[str] = None) -> List[Asset]:
        """All matching assets, newest first, with the current holder loaded."""
        return AssetService._filtered_query(db, status, category).options(
            joinedload(Asset.current_holder)
        ).order_by(Asset.created_at.desc(), Asset.id.desc()).all()

    @staticmethod
    def list_assets_paginated(
        db: Session,
        status: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Asset], int]:
        """
        One page of matching assets plus the total match count.

        `search` is a case-insensitive substring over name, asset ID,
        serial number and category.
        """
        page, limit = clamp_page(page, limit)
        query = AssetService._filtered_query(db, status, category)

        term = (search or "").strip()
        if term:
            pattern = like_pattern(term)
            query = query.filter(or_(
                Asset.name.ilike(pattern, escape="\\"),
                Asset.asset_id.ilike(pattern, escape="\\"),
                Asset.serial_number.ilike(pattern, escape="\\"),
                Asset.category.ilike(pattern, escape="\\"),
            ))

        total = query.count()
        items = query.order_by(Asset.created_at.desc(), Asset.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()
        return items, total

    @staticmethod
    def get_asset(db: Session, asset_pk: int) -> Asset:
        asset = db.query(Asset).options(
            joinedload(Asset.current_holder)
        ).filter(Asset.id == asset_pk).first()
        if not asset:
            raise AssetNotFound()
        return asset

    @staticmethod
    def get_by_asset_id(db: Session, asset_id: str) -> Asset:
        asset = db.query(Asset).filter(Asset.asset_id == str(asset_id).strip().upper()).first()
        if not asset:
            raise AssetNotFound()
        return asset

    @staticmethod
    def update_asset(db: Session, asset_pk: int, data: dict) -> Asset:
        """Partial update; identifiers and status are re-validated."""
        asset = AssetService.get_asset(db, asset_pk)
        data = {k: v for k, v in data.items() if k in ASSET_FIELDS}
        AssetService._check_required(data, creating=False)

        if "asset_id" in data:
            if data["asset_id"] is None:
                raise ValidationError.single("asset_id", "asset_id is required")
            data["asset_id"] = normalize_asset_id(data["asset_id"])
        if "serial_number" in data:
            data["serial_number"] = str(data["serial_number"]).strip()

        AssetService._ensure_unique(
            db,
            data.get("asset_id") if data.get("asset_id") != asset.asset_id else None,
            data.get("serial_number") if data.get("serial_number") != asset.serial_number else None,
            exclude_id=asset.id,
        )
        if data.get("asset_id") and data["asset_id"] != asset.asset_id:
            reserve_identifier(db, data["asset_id"])

        if "status" in data:
            if data["status"] is None:
                raise ValidationError.single("status", "status is required")
            new_status = coerce_enum(AssetStatus, data["status"], "status")
            if new_status != asset.status and AssetStatus.ASSIGNED in (new_status, asset.status):
                raise AssetStatusLocked()
            data["status"] = new_status

        for field, value in data.items():
            setattr(asset, field, value)

        AssetService._flush(db)
        logger.info("Asset %s updated: %s", asset.asset_id, ", ".join(sorted(data)) or "no changes")
        return asset

    @staticmethod
    def delete_asset(db: Session, asset_pk: int) -> Asset:
        """
        Hard delete. Assignments are kept and lose their asset reference.
        """
        asset = AssetService.get_asset(db, asset_pk)
        db.execute(
            update(Assignment)
            .where(Assignment.asset_id == asset.id)
            .values(asset_id=None)
            .execution_options(synchronize_session="fetch")
        )
        db.delete(asset)
        db.flush()
        logger.info("Asset %s deleted", asset.asset_id)
        return asset

    @staticmethod
    def add_maintenance_record(db: Session, asset_pk: int, record: dict) -> Asset:
        """Append an entry to the asset's maintenance history."""
        asset = AssetService.get_asset(db, asset_pk)
        errors = [
            (field, f"{field} is required")
            for field in ("date", "type", "description", "performed_by")
            if not record.get(field)
        ]
        if errors:
            raise ValidationError(errors)
        cost = record.get("cost") or 0.0
        if cost < 0:
            raise ValidationError.single("cost", "Cost cannot be negative")

        entry = MaintenanceRecord(
            date=record["date"],
            type=record["type"],
            description=record["description"],
            cost=cost,
            performed_by=record["performed_by"],
        )
        asset.maintenance_history.append(entry)
        db.flush()
        logger.info("Maintenance '%s' recorded for asset %s", entry.type, asset.asset_id)
        return asset

    @staticmethod
    def preview_next_asset_id(db: Session) -> str:
        return preview_next_asset_id(db)

