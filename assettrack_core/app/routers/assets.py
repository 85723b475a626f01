"""
Asset API Router
================
Asset registry endpoints:
- listing (plain, or paginated when page/limit/search are given)
- next-ID preview
- create / update / delete
- maintenance history entries
"""

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..models import UserRole
from ..security import (
    get_db, get_current_user, require_role, SecurityAuditLog, http_error
)
from ..services.asset_service import AssetService
from ..services.exceptions import AssetTrackError
from ..services.validation import clamp_page

router = APIRouter(prefix="/api/v1/assets", tags=["Assets"])

WRITE_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


def asset_out(asset) -> schemas.AssetOut:
    return schemas.AssetOut.model_validate(asset)


# =============================================================================
# QUERIES
# =============================================================================

@router.get("")
def list_assets(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = None,
    search: Optional[str] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """
    List assets, newest first.

    Without page/limit/search every match is returned; with any of them the
    response carries one page plus a `pagination` block.
    """
    try:
        if search or page is not None or limit is not None:
            page, limit = clamp_page(page, limit)
            items, total = AssetService.list_assets_paginated(
                db, status=status_filter, category=category, search=search, page=page, limit=limit
            )
            total_pages = math.ceil(total / limit)
            return {
                "assets": [asset_out(a) for a in items],
                "pagination": schemas.Pagination(
                    page=page, limit=limit, total=total,
                    total_pages=total_pages, has_more=page < total_pages
                ),
            }
        assets = AssetService.list_assets(db, status=status_filter, category=category)
        return {"assets": [asset_out(a) for a in assets]}
    except AssetTrackError as e:
        raise http_error(e)


@router.get("/next-id")
def next_asset_id(db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    """The ID the next auto-numbered asset will get. Does not reserve it."""
    return {"nextAssetId": AssetService.preview_next_asset_id(db)}


@router.get("/{asset_pk}")
def get_asset(asset_pk: int, db: Session = Depends(get_db), current_user=Depends(get_current_user)):
    try:
        return {"asset": asset_out(AssetService.get_asset(db, asset_pk))}
    except AssetTrackError as e:
        raise http_error(e)


# =============================================================================
# COMMANDS
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
def create_asset(
    payload: schemas.AssetCreate,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    try:
        asset = AssetService.create_asset(db, payload.model_dump(exclude_unset=True))
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "create", "assets", asset.id,
        {"asset_id": asset.asset_id, "serial_number": asset.serial_number}
    )
    return {"message": "Asset created successfully", "asset": asset_out(asset)}


@router.put("/{asset_pk}")
def update_asset(
    asset_pk: int,
    payload: schemas.AssetUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    changes = payload.model_dump(exclude_unset=True)
    try:
        asset = AssetService.update_asset(db, asset_pk, changes)
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(
        db, current_user.id, "update", "assets", asset.id, changes
    )
    return {"message": "Asset updated successfully", "asset": asset_out(asset)}


@router.delete("/{asset_pk}")
def delete_asset(
    asset_pk: int,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(UserRole.ADMIN))
):
    try:
        asset = AssetService.delete_asset(db, asset_pk)
        deleted = {"asset_id": asset.asset_id, "serial_number": asset.serial_number}
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    SecurityAuditLog.log_sensitive_action(db, current_user.id, "delete", "assets", asset_pk, deleted)
    return {"message": "Asset deleted successfully"}


@router.post("/{asset_pk}/maintenance", status_code=status.HTTP_201_CREATED)
def add_maintenance_record(
    asset_pk: int,
    payload: schemas.MaintenanceIn,
    db: Session = Depends(get_db),
    current_user=Depends(require_role(*WRITE_ROLES))
):
    try:
        asset = AssetService.add_maintenance_record(db, asset_pk, payload.model_dump())
        db.commit()
    except AssetTrackError as e:
        db.rollback()
        raise http_error(e)

    return {"message": "Maintenance record added", "asset": asset_out(asset)}
