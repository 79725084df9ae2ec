"""
Tests for lawnops/agents/eligibility.py - hard constraints on crews.
"""
import pytest

from factories import JOB_LAT, JOB_LNG
from lawnops.agents.eligibility import coverage, evaluate_crew, evaluate_crews, get_eligible_crews
from lawnops.schemas.dispatch import CrewProfile, EligibilityThresholds, JobSpec, ZoneSpec

MOW_EQUIPMENT = ["mower_ztr", "trimmer", "blower"]


def _job(**overrides) -> JobSpec:
    values = {
        "job_id": "job-1",
        "lat": JOB_LAT,
        "lng": JOB_LNG,
        "services": ["mowing"],
        "required_skills": ["mowing"],
        "required_equipment": MOW_EQUIPMENT,
    }
    values.update(overrides)
    return JobSpec(**values)


def _crew(crew_id: int = 1, **overrides) -> CrewProfile:
    values = {
        "crew_id": crew_id,
        "name": f"Crew {crew_id}",
        "skills": ["mowing"],
        "equipment": MOW_EQUIPMENT,
        "member_count": 2,
        "home_base_lat": 30.28,
        "home_base_lng": -97.75,
        "service_radius_miles": 20.0,
    }
    values.update(overrides)
    return CrewProfile(**values)


# Roughly 85 miles north of the job
FAR_AWAY = {"home_base_lat": 31.5, "home_base_lng": -97.75}


class TestCoverage:
    def test_case_insensitive(self):
        assert coverage(["Mowing", "CLEANUP"], ["mowing", "cleanup"]) == (1.0, [])

    def test_partial(self):
        assert coverage(["mowing", "cleanup"], ["mowing"]) == (0.5, ["cleanup"])

    def test_nothing_required(self):
        assert coverage([], ["mowing"]) == (1.0, [])


class TestSkillsAndEquipment:
    def test_full_match_is_eligible(self):
        result = evaluate_crew(_job(), _crew())
        assert result.eligible is True
        assert result.skill_match_pct == 100.0
        assert result.within_service_radius is True
        assert result.exclusion_reasons == []

    def test_irrigation_job_with_mowing_crews(self):
        """Nobody on a mowing roster can install irrigation."""
        job = _job(services=["irrigation"], required_skills=["irrigation_install"], required_equipment=[])
        crews = [_crew(1), _crew(2, skills=["mowing", "cleanup"])]

        evaluations = evaluate_crews(job, crews)

        assert get_eligible_crews(job, crews) == []
        for evaluation in evaluations:
            assert "skill_match_below_threshold" in evaluation.exclusion_reasons
            assert evaluation.missing_skills == ["irrigation_install"]

    def test_missing_equipment(self):
        result = evaluate_crew(_job(), _crew(equipment=["trimmer", "blower"]))
        assert result.eligible is False
        assert result.exclusion_reasons == ["equipment_match_below_threshold"]
        assert result.missing_equipment == ["mower_ztr"]
        assert result.equipment_match_pct == 66.67

    def test_lowering_threshold_never_shrinks_eligible_set(self):
        """A half-matching crew gets in once the bar drops to 50%."""
        job = _job(required_skills=["mowing", "cleanup"])
        crews = [_crew(1), _crew(2, skills=["mowing", "cleanup"])]

        strict = get_eligible_crews(job, crews, EligibilityThresholds(skill_match_min_pct=100))
        relaxed = get_eligible_crews(job, crews, EligibilityThresholds(skill_match_min_pct=50))
        anything = get_eligible_crews(job, crews, EligibilityThresholds(skill_match_min_pct=0))

        assert [e.crew_id for e in strict] == [2]
        assert [e.crew_id for e in relaxed] == [1, 2]
        assert {e.crew_id for e in strict} <= {e.crew_id for e in relaxed} <= {e.crew_id for e in anything}


class TestServiceArea:
    def test_bbox_zone(self):
        zone = ZoneSpec(zone_id=7, min_lat=30.2, max_lat=30.3, min_lng=-97.8, max_lng=-97.7)
        result = evaluate_crew(_job(), _crew(zones=[zone], **FAR_AWAY))
        assert result.eligible is True
        assert result.in_zone is True
        assert result.matched_zone_id == 7
        assert result.within_service_radius is False

    def test_circle_zone_lowest_id_wins(self):
        zones = [
            ZoneSpec(zone_id=9, center_lat=JOB_LAT, center_lng=JOB_LNG, radius_miles=5),
            ZoneSpec(zone_id=4, center_lat=30.27, center_lng=-97.74, radius_miles=5),
        ]
        result = evaluate_crew(_job(), _crew(zones=zones, **FAR_AWAY))
        assert result.matched_zone_id == 4

    def test_outside_everything(self):
        zone = ZoneSpec(zone_id=3, center_lat=31.5, center_lng=-97.75, radius_miles=5)
        result = evaluate_crew(_job(), _crew(zones=[zone], **FAR_AWAY))
        assert result.eligible is False
        assert result.exclusion_reasons == ["outside_service_area"]
        assert result.distance_miles > 80

    def test_job_without_coordinates(self):
        """A job that was never geocoded cannot be placed in any area."""
        result = evaluate_crew(_job(lat=None, lng=None), _crew())
        assert result.eligible is False
        assert result.exclusion_reasons == ["missing_coordinates"]

    def test_crew_without_home_base_or_zone(self):
        result = evaluate_crew(_job(), _crew(home_base_lat=None, home_base_lng=None))
        assert result.exclusion_reasons == ["missing_coordinates"]


class TestCrewState:
    def test_crew_size(self):
        result = evaluate_crew(_job(crew_size_min=3), _crew(member_count=2))
        assert result.crew_size_ok is False
        assert result.exclusion_reasons == ["insufficient_crew_size"]

    def test_inactive(self):
        result = evaluate_crew(_job(), _crew(is_active=False))
        assert result.exclusion_reasons == ["inactive"]

    def test_all_reasons_reported(self):
        """Excluded crews list every failed constraint, not just the first."""
        result = evaluate_crew(
            _job(crew_size_min=4),
            _crew(skills=[], equipment=[], is_active=False, **FAR_AWAY),
        )
        assert result.exclusion_reasons == [
            "skill_match_below_threshold",
            "equipment_match_below_threshold",
            "outside_service_area",
            "insufficient_crew_size",
            "inactive",
        ]


class TestOrdering:
    def test_sorted_by_crew_id(self):
        crews = [_crew(3), _crew(1), _crew(2)]
        assert [e.crew_id for e in evaluate_crews(_job(), crews)] == [1, 2, 3]

    @pytest.mark.parametrize("order", [[1, 2, 3], [3, 2, 1], [2, 3, 1]])
    def test_input_order_irrelevant(self, order):
        crews = {i: _crew(i, member_count=i) for i in (1, 2, 3)}
        job = _job(crew_size_min=2)
        result = get_eligible_crews(job, [crews[i] for i in order])
        assert [e.crew_id for e in result] == [2, 3]
