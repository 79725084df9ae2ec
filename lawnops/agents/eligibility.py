"""
Eligibility Filter - which crews could legally take a job.

A crew is eligible iff:
  skill coverage     >= skill_match_min_pct
  equipment coverage >= equipment_match_min_pct
  job inside one of its zones, or within service_radius_miles of home base
  member_count >= job.crew_size_min
  crew is active

Pure computation over its inputs. Every crew gets an EligibleCrew record with
its coverage numbers, even when excluded, so the ranking stage and the UI can
show partial matches.
"""
import logging
from typing import Optional

from lawnops.schemas.dispatch import CrewProfile, EligibilityThresholds, EligibleCrew, JobSpec, ZoneSpec
from lawnops.services.geo import haversine_miles

logger = logging.getLogger(__name__)

# Tolerance for comparing coverage percentages against thresholds
PCT_EPSILON = 1e-9


def coverage(required: list[str], available: list[str]) -> tuple[float, list[str]]:
    """
    Fraction of `required` present in `available`, case-insensitive.
    Vacuously 1.0 when nothing is required. Also returns the missing items.
    """
    required_set = {r.strip().lower() for r in required if r and r.strip()}
    if not required_set:
        return 1.0, []
    available_set = {a.strip().lower() for a in available if a}
    missing = sorted(required_set - available_set)
    return (len(required_set) - len(missing)) / len(required_set), missing


def _in_zone(zone: ZoneSpec, lat: float, lng: float) -> bool:
    if zone.has_bbox:
        if zone.min_lat <= lat <= zone.max_lat and zone.min_lng <= lng <= zone.max_lng:
            return True
    if zone.has_circle:
        return haversine_miles(zone.center_lat, zone.center_lng, lat, lng) <= zone.radius_miles
    return False


def _matching_zone(crew: CrewProfile, lat: float, lng: float) -> Optional[int]:
    for zone in sorted(crew.zones, key=lambda z: z.zone_id):
        if _in_zone(zone, lat, lng):
            return zone.zone_id
    return None


def evaluate_crew(
    job: JobSpec,
    crew: CrewProfile,
    thresholds: Optional[EligibilityThresholds] = None,
) -> EligibleCrew:
    """Evaluate one crew against one job."""
    thresholds = thresholds or EligibilityThresholds()
    reasons = []

    skill_cov, missing_skills = coverage(job.required_skills, crew.skills)
    equip_cov, missing_equipment = coverage(job.required_equipment, crew.equipment)
    skill_pct = round(skill_cov * 100, 2)
    equip_pct = round(equip_cov * 100, 2)

    if skill_cov * 100 + PCT_EPSILON < thresholds.skill_match_min_pct:
        reasons.append("skill_match_below_threshold")
    if equip_cov * 100 + PCT_EPSILON < thresholds.equipment_match_min_pct:
        reasons.append("equipment_match_below_threshold")

    in_zone = False
    matched_zone_id = None
    within_radius = False
    distance = None
    if not job.has_location:
        reasons.append("missing_coordinates")
    else:
        matched_zone_id = _matching_zone(crew, job.lat, job.lng)
        in_zone = matched_zone_id is not None
        if crew.home_base_lat is not None and crew.home_base_lng is not None:
            distance = round(haversine_miles(crew.home_base_lat, crew.home_base_lng, job.lat, job.lng), 2)
            within_radius = distance <= crew.service_radius_miles
        if not in_zone and not within_radius:
            if distance is None and not crew.zones:
                reasons.append("missing_coordinates")
            else:
                reasons.append("outside_service_area")

    crew_size_ok = crew.member_count >= job.crew_size_min
    if not crew_size_ok:
        reasons.append("insufficient_crew_size")
    if not crew.is_active:
        reasons.append("inactive")

    return EligibleCrew(
        crew_id=crew.crew_id,
        crew_name=crew.name,
        eligible=not reasons,
        skill_coverage=round(skill_cov, 4),
        equipment_coverage=round(equip_cov, 4),
        skill_match_pct=skill_pct,
        equipment_match_pct=equip_pct,
        missing_skills=missing_skills,
        missing_equipment=missing_equipment,
        in_zone=in_zone,
        matched_zone_id=matched_zone_id,
        within_service_radius=within_radius,
        distance_miles=distance,
        crew_size_ok=crew_size_ok,
        exclusion_reasons=reasons,
    )


def evaluate_crews(
    job: JobSpec,
    crews: list[CrewProfile],
    thresholds: Optional[EligibilityThresholds] = None,
) -> list[EligibleCrew]:
    """Evaluate every crew. Sorted by crew id so output never depends on input order."""
    evaluations = [evaluate_crew(job, crew, thresholds) for crew in crews]
    evaluations.sort(key=lambda e: e.crew_id)
    return evaluations


def get_eligible_crews(
    job: JobSpec,
    crews: list[CrewProfile],
    thresholds: Optional[EligibilityThresholds] = None,
) -> list[EligibleCrew]:
    """Crews that satisfy every hard constraint for the job."""
    evaluations = evaluate_crews(job, crews, thresholds)
    eligible = [e for e in evaluations if e.eligible]
    logger.debug(
        "Job %s: %d/%d crews eligible",
        str(job.job_id)[:8], len(eligible), len(evaluations),
    )
    return eligible
