from typing import Any, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import District, Municipality, Province
from ..services.issue_query import coerce_int


router = APIRouter(prefix="/api/locations", tags=["locations"])


def provinces_payload(db: Session) -> dict:
    rows = db.query(Province).order_by(Province.id.asc()).all()
    return {
        "success": True,
        "provinces": [{"id": p.id, "name": p.name, "name_nepali": p.name_nepali} for p in rows],
    }


def districts_payload(db: Session, province_id: Any = None) -> dict:
    query = db.query(District)
    pid = coerce_int(province_id, 0)
    if pid:
        query = query.filter(District.province_id == pid)
    rows = query.order_by(District.name.asc()).all()
    return {
        "success": True,
        "districts": [
            {"id": d.id, "name": d.name, "name_nepali": d.name_nepali, "province_id": d.province_id}
            for d in rows
        ],
    }


def municipalities_payload(db: Session, district_id: Any = None) -> dict:
    query = db.query(Municipality)
    did = coerce_int(district_id, 0)
    if did:
        query = query.filter(Municipality.district_id == did)
    rows = query.order_by(Municipality.name.asc()).all()
    return {
        "success": True,
        "municipalities": [
            {
                "id": m.id,
                "name": m.name,
                "name_nepali": m.name_nepali,
                "district_id": m.district_id,
                "type": m.type,
                "total_wards": m.total_wards,
            }
            for m in rows
        ],
    }


@router.get("/provinces")
def list_provinces(db: Session = Depends(get_db)):
    return provinces_payload(db)


@router.get("/districts")
def list_districts(province_id: Optional[str] = None, db: Session = Depends(get_db)):
    return districts_payload(db, province_id)


@router.get("/municipalities")
def list_municipalities(district_id: Optional[str] = None, db: Session = Depends(get_db)):
    return municipalities_payload(db, district_id)
