from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.context import RequestContext
from ..auth.security import get_request_context
from ..db import get_db
from ..services import analytics


router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def dashboard_payload(db: Session, ctx: RequestContext) -> dict:
    return {"success": True, "stats": analytics.dashboard_stats(db, ctx)}


def categories_payload(db: Session) -> dict:
    return {"success": True, "categories": analytics.category_distribution(db)}


def trends_payload(db: Session) -> dict:
    return {"success": True, "trends": analytics.resolution_trends(db)}


def regional_payload(db: Session) -> dict:
    return {"success": True, "regional_stats": analytics.regional_stats(db)}


@router.get("/dashboard")
def dashboard_stats(db: Session = Depends(get_db), ctx: RequestContext = Depends(get_request_context)):
    return dashboard_payload(db, ctx)


@router.get("/categories")
def category_distribution(db: Session = Depends(get_db)):
    return categories_payload(db)


@router.get("/trends")
def resolution_trends(db: Session = Depends(get_db)):
    return trends_payload(db)


@router.get("/regions")
def regional_stats(db: Session = Depends(get_db)):
    return regional_payload(db)
