"""
Fixed reference data: the province/district/municipality hierarchy and,
optionally, the sample admin and official accounts.
Both seeders are idempotent.
"""
import structlog
from sqlalchemy.orm import Session

from ..auth.security import get_password_hash
from ..models.models import District, Municipality, Province, User


logger = structlog.get_logger(__name__)

PROVINCES = [
    (1, "Province 1", "प्रदेश १"),
    (2, "Madhesh Province", "मधेश प्रदेश"),
    (3, "Bagmati Province", "बागमती प्रदेश"),
    (4, "Gandaki Province", "गण्डकी प्रदेश"),
    (5, "Lumbini Province", "लुम्बिनी प्रदेश"),
    (6, "Karnali Province", "कर्णाली प्रदेश"),
    (7, "Sudurpashchim Province", "सुदूरपश्चिम प्रदेश"),
]

# district name -> (nepali name, province id, [(municipality, nepali name, type, wards)])
DISTRICTS = {
    "Kathmandu": ("काठमाडौं", 3, [("Kathmandu Metropolitan City", "काठमाडौं महानगरपालिका", "metropolitan", 32)]),
    "Lalitpur": ("ललितपुर", 3, [("Lalitpur Metropolitan City", "ललितपुर महानगरपालिका", "metropolitan", 29)]),
    "Bhaktapur": ("भक्तपुर", 3, [("Bhaktapur Municipality", "भक्तपुर नगरपालिका", "municipality", 10)]),
    "Kaski": ("कास्की", 4, [("Pokhara Metropolitan City", "पोखरा महानगरपालिका", "metropolitan", 33)]),
    "Chitwan": ("चितवन", 3, [("Bharatpur Metropolitan City", "भरतपुर महानगरपालिका", "metropolitan", 29)]),
}

SAMPLE_ADMIN = {
    "full_name": "System Administrator",
    "email": "admin@standwithnepal.org",
    "password": "admin123",
    "user_type": "admin",
}

SAMPLE_OFFICIAL = {
    "full_name": "Ram Bahadur Thapa",
    "email": "ram.thapa@ktm.gov.np",
    "password": "official123",
    "user_type": "official",
    "official_id": "KTM001",
    "jurisdiction": "ward",
    "district": "Kathmandu",
    "municipality": "Kathmandu Metropolitan City",
    "ward_no": 10,
    "verified": True,
}


def seed_locations(db: Session) -> int:
    """Insert any missing provinces, districts and municipalities. Returns rows added."""
    added = 0
    for pid, name, name_np in PROVINCES:
        if db.query(Province).filter(Province.id == pid).first() is None:
            db.add(Province(id=pid, name=name, name_nepali=name_np))
            added += 1
    db.flush()

    for district_name, (name_np, province_id, municipalities) in DISTRICTS.items():
        district = db.query(District).filter(District.name == district_name).first()
        if district is None:
            district = District(name=district_name, name_nepali=name_np, province_id=province_id)
            db.add(district)
            db.flush()
            added += 1
        for muni_name, muni_np, muni_type, wards in municipalities:
            exists = db.query(Municipality).filter(
                Municipality.name == muni_name, Municipality.district_id == district.id
            ).first()
            if exists is None:
                db.add(Municipality(
                    name=muni_name,
                    name_nepali=muni_np,
                    district_id=district.id,
                    type=muni_type,
                    total_wards=wards,
                ))
                added += 1
    db.commit()
    if added:
        logger.info("locations_seeded", rows=added)
    return added


def seed_sample_accounts(db: Session) -> int:
    added = 0
    for account in (SAMPLE_ADMIN, SAMPLE_OFFICIAL):
        if db.query(User).filter(User.email == account["email"]).first() is not None:
            continue
        fields = {k: v for k, v in account.items() if k != "password"}
        db.add(User(password_hash=get_password_hash(account["password"]), **fields))
        added += 1
    db.commit()
    if added:
        logger.info("sample_accounts_seeded", rows=added)
    return added
