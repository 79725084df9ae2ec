"""
Row factories for the SQLite-backed tests.
"""
import uuid
from datetime import date, datetime, timezone

from lawnops.models import (
    Business,
    Crew,
    CrewTimeOff,
    CrewZoneAssignment,
    JobRequest,
    ServiceZone,
    User,
)
from lawnops.schemas.sms import InboundMessage

BUSINESS_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
OTHER_BUSINESS_ID = uuid.UUID("99999999-9999-9999-9999-999999999999")
BUSINESS_SMS_PHONE = "+15125550100"
CUSTOMER_PHONE = "+15125559876"

# Downtown Austin; the default zone is centred here
JOB_LAT = 30.2672
JOB_LNG = -97.7431

WEEKDAYS = {day: {"start": "07:00", "end": "17:00"} for day in ("mon", "tue", "wed", "thu", "fri")}

# A Monday, so a 7-day window starting here has five working days
MONDAY = date(2026, 6, 1)


def make_message(text: str, sid: str | None = None, received_at: datetime | None = None, **overrides) -> InboundMessage:
    """An inbound message as the conductor hands it to the engine."""
    values = {
        "business_id": str(BUSINESS_ID),
        "from_phone": CUSTOMER_PHONE,
        "to_phone": BUSINESS_SMS_PHONE,
        "text": text,
        "provider_message_id": sid or f"SM{uuid.uuid4().hex}",
        "received_at": received_at or datetime(2026, 6, 1, 15, 0, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return InboundMessage(**values)


async def add_business(db, business_id=BUSINESS_ID, sms_phone=BUSINESS_SMS_PHONE, **overrides) -> Business:
    values = {
        "id": business_id,
        "name": "Green Acres Lawn Care",
        "sms_phone": sms_phone,
        "call_phone": "+15125550101",
        "timezone": "America/Chicago",
        "is_active": True,
    }
    values.update(overrides)
    business = Business(**values)
    db.add(business)
    await db.flush()
    return business


async def add_user(db, role: str = "owner", business_id=BUSINESS_ID, is_active: bool = True) -> User:
    user = User(
        business_id=business_id,
        email=f"{role}-{uuid.uuid4().hex[:8]}@greenacres.example",
        name=role.title(),
        role=role,
        is_active=is_active,
    )
    db.add(user)
    await db.flush()
    return user


async def add_zone(db, business_id=BUSINESS_ID, radius_miles: float = 12.0, **overrides) -> ServiceZone:
    values = {
        "business_id": business_id,
        "name": "Central Austin",
        "center_lat": JOB_LAT,
        "center_lng": JOB_LNG,
        "radius_miles": radius_miles,
        "is_active": True,
    }
    values.update(overrides)
    zone = ServiceZone(**values)
    db.add(zone)
    await db.flush()
    return zone


async def add_crew(
    db,
    name: str = "Mow Crew",
    skills: list | None = None,
    equipment: list | None = None,
    zone: ServiceZone | None = None,
    time_off: list[tuple[date, date]] | None = None,
    business_id=BUSINESS_ID,
    **overrides,
) -> Crew:
    """
    A crew with its zone assignment and time off attached through the
    relationships, so later selects never need a lazy load.
    """
    values = {
        "business_id": business_id,
        "name": name,
        "skills": skills if skills is not None else ["mowing"],
        "equipment": equipment if equipment is not None else ["mower_ztr", "trimmer", "blower"],
        "member_count": 2,
        "home_base_lat": 30.2800,
        "home_base_lng": -97.7500,
        "service_radius_miles": 20.0,
        "daily_capacity_minutes": 480,
        "availability": WEEKDAYS,
        "is_active": True,
    }
    values.update(overrides)
    crew = Crew(**values, zone_assignments=[], time_off=[])
    if zone is not None:
        crew.zone_assignments.append(CrewZoneAssignment(zone=zone, is_primary=True))
    for start, end in time_off or []:
        crew.time_off.append(CrewTimeOff(start_date=start, end_date=end, reason="vacation"))
    db.add(crew)
    await db.flush()
    return crew


async def add_job(db, business_id=BUSINESS_ID, **overrides) -> JobRequest:
    values = {
        "business_id": business_id,
        "customer_phone": CUSTOMER_PHONE,
        "address": "123 Oak St, Austin, TX 78701",
        "zip_code": "78701",
        "lat": JOB_LAT,
        "lng": JOB_LNG,
        "services": ["mowing"],
        "frequency": "weekly",
        "required_skills": ["mowing"],
        "required_equipment": ["mower_ztr", "trimmer", "blower"],
        "crew_size_min": 1,
        "labor_low_minutes": 45,
        "labor_high_minutes": 60,
        "lot_area_sqft": 15000,
        "price_low_usd": 45.0,
        "price_high_usd": 60.0,
        "source": "sms",
        "status": "new",
    }
    values.update(overrides)
    job = JobRequest(**values)
    db.add(job)
    await db.flush()
    return job
