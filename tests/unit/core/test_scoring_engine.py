"""Unit tests for the case viability scoring engine."""
import pytest
from datetime import date

from intake_agent.config import scoring_tables as tables
from intake_agent.core.models import (
    ApplicationStage,
    ApplicationStatus,
    Demographics,
    Education,
    EducationLevel,
    FunctionalLimitations,
    IntakeRecord,
    Job,
    MedicalInfo,
    Recommendation,
    ScoringSource,
    Severity,
    WorkDemand,
    WorkHistory,
)
from intake_agent.core.scoring_engine import (
    ScoringThresholds,
    calculate_raw_score,
    calculate_score,
    get_tier,
    match_condition,
    round_half_up,
)

TODAY = date(2025, 6, 10)


def _dob(age: int) -> date:
    return TODAY.replace(year=TODAY.year - age)


def _record(age=None, **sections) -> IntakeRecord:
    demographics = Demographics(date_of_birth=_dob(age)) if age is not None else Demographics()
    return IntakeRecord(demographics=demographics, **sections)


@pytest.fixture
def strong_record():
    """Older manual laborer with physical and mental conditions."""
    return _record(
        age=56,
        education=Education(level=EducationLevel.LIMITED),
        medical=MedicalInfo(
            conditions=["chronic back pain", "depression"],
            severity=Severity.SEVERE,
            hospitalizations=2,
            medications=["gabapentin", "cyclobenzaprine"],
        ),
        functional_limitations=FunctionalLimitations(
            lifting_pounds=10, sitting_minutes=25, expected_absences=3,
        ),
        work_history=WorkHistory(
            jobs=[Job(title="Warehouse associate", years=20)],
            heaviest_lifting=WorkDemand.HEAVY,
            total_work_years=32,
        ),
        application=ApplicationStatus(
            has_applied=True, status=ApplicationStage.DENIED_INITIAL,
        ),
    )


@pytest.mark.unit
class TestScoringEngine:
    """Test deterministic scoring."""

    def test_strong_case_is_highly_recommended(self, strong_record):
        """Test the older laborer lands in the top tier with age and grid narratives."""
        result = calculate_score(strong_record, today=TODAY)

        assert result.total_score >= 70
        assert result.recommendation == Recommendation.HIGHLY_RECOMMENDED
        assert result.callback_timeframe == "24 hours"
        assert result.source == ScoringSource.LOCAL
        assert any("Age 55-59" in s for s in result.case_strengths)
        assert any("Grid Rule 202.04" in s for s in result.case_strengths)

    def test_score_is_clamped_to_100(self, strong_record):
        """Test that a raw score far above the scale is clamped."""
        assert calculate_score(strong_record, today=TODAY).total_score == 100

    def test_young_college_caller_is_lowest_tier(self):
        """Test a near-empty record for a young college graduate."""
        record = _record(age=30, education=Education(level=EducationLevel.COLLEGE))

        result = calculate_score(record, today=TODAY)

        assert result.total_score == 0
        assert result.recommendation == Recommendation.NOT_RECOMMENDED
        assert any("Under 50" in c for c in result.case_concerns)
        assert any("College" in c for c in result.case_concerns)

    def test_empty_record_scores_without_error(self):
        """Test that a record with nothing in it still scores."""
        result = calculate_score(IntakeRecord())

        assert 0 <= result.total_score <= 100
        assert result.recommendation == Recommendation.NOT_RECOMMENDED
        assert result.case_strengths == ()

    def test_scoring_is_deterministic(self, strong_record):
        """Test that the same record always gives the same result."""
        first = calculate_score(strong_record, today=TODAY)
        second = calculate_score(strong_record.model_copy(deep=True), today=TODAY)

        assert first == second

    def test_age_50_boundary(self):
        """Test the jump in score when a caller turns 50."""
        medical = MedicalInfo(conditions=["back pain"], severity=Severity.SEVERE)

        at_49 = calculate_score(_record(age=49, medical=medical), today=TODAY)
        at_50 = calculate_score(_record(age=50, medical=medical), today=TODAY)

        # 37.5 raw; the 30% portion is scaled by 0.7 under 50
        assert at_49.total_score == 34
        # +5 condition bonus and the 1.15 multiplier at 50
        assert at_50.total_score == 44
        assert any("Age 50-54" in s for s in at_50.case_strengths)
        assert any("Under 50" in c for c in at_49.case_concerns)

    def test_adding_limitations_never_lowers_score(self):
        """Test that more documented limitations only raise the score."""
        base = _record(age=45, medical=MedicalInfo(conditions=["fibromyalgia"]))
        previous = calculate_score(base, today=TODAY).total_score

        for update in (
            {"needs_to_lie_down": True},
            {"concentration_issues": True},
            {"walking_blocks": 1},
            {"standing_minutes": 10},
        ):
            limits = base.functional_limitations.model_copy(update=update)
            base = base.model_copy(update={"functional_limitations": limits})
            current = calculate_score(base, today=TODAY).total_score
            assert current >= previous
            previous = current

    def test_sedentary_work_history_is_a_concern(self):
        """Test that desk work counts against the claim."""
        record = _record(age=52, work_history=WorkHistory(heaviest_lifting=WorkDemand.SEDENTARY))

        result = calculate_score(record, today=TODAY)

        assert any("Sedentary work history" in c for c in result.case_concerns)

    def test_custom_thresholds(self):
        """Test that tier cut-offs come from the thresholds passed in."""
        record = _record(age=49, medical=MedicalInfo(conditions=["back pain"], severity=Severity.SEVERE))
        thresholds = ScoringThresholds(highly_recommended=30, recommended=20, consider_caution=10, weak_case=5)

        result = calculate_score(record, thresholds, today=TODAY)

        assert result.recommendation == Recommendation.HIGHLY_RECOMMENDED
        assert result.callback_timeframe == "24 hours"


@pytest.mark.unit
class TestScoringHelpers:
    """Test the scoring building blocks."""

    def test_round_half_up(self):
        """Test that halves round toward positive infinity."""
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4
        assert round_half_up(-4.5) == -4
        assert round_half_up(0.49) == 0

    @pytest.mark.parametrize("score,expected", [
        (100, Recommendation.HIGHLY_RECOMMENDED),
        (70, Recommendation.HIGHLY_RECOMMENDED),
        (69, Recommendation.RECOMMENDED),
        (45, Recommendation.RECOMMENDED),
        (44, Recommendation.CONSIDER_CAUTION),
        (25, Recommendation.CONSIDER_CAUTION),
        (24, Recommendation.WEAK_CASE),
        (10, Recommendation.WEAK_CASE),
        (9, Recommendation.NOT_RECOMMENDED),
        (0, Recommendation.NOT_RECOMMENDED),
    ])
    def test_tier_boundaries(self, score, expected):
        """Test each tier's lower bound."""
        assert get_tier(score)[0] == expected

    def test_match_condition_first_key_wins(self):
        """Test case-insensitive substring matching of conditions."""
        entry = match_condition("Multiple Sclerosis (relapsing)")
        assert entry is not None
        assert entry.approval_rate == 0.80

        assert match_condition("ingrown toenail") is None


def _case(age, severity, education, demand, lifting, **medical) -> IntakeRecord:
    return _record(
        age=age,
        education=Education(level=education),
        medical=MedicalInfo(severity=severity, **{"conditions": ["lupus"], **medical}),
        functional_limitations=FunctionalLimitations(lifting_pounds=lifting),
        work_history=WorkHistory(heaviest_lifting=demand),
    )


CASES = [
    (30, Severity.MILD, EducationLevel.COLLEGE, WorkDemand.SEDENTARY, 50),
    (45, Severity.MODERATE, EducationLevel.HIGH_SCHOOL, WorkDemand.LIGHT, 20),
    (52, Severity.SEVERE, EducationLevel.LIMITED, WorkDemand.MEDIUM, 10),
    (58, Severity.DISABLING, EducationLevel.MARGINAL, WorkDemand.HEAVY, None),
    (63, None, None, None, 5),
]


def _maximal_record() -> IntakeRecord:
    """Every list and flag filled with the highest-scoring values."""
    return _record(
        age=64,
        education=Education(level=EducationLevel.ILLITERATE),
        medical=MedicalInfo(
            conditions=list(tables.CONDITION_SCORES),
            severity=Severity.DISABLING,
            hospitalizations=40,
            medications=list(tables.HIGH_SEVERITY_MEDS) + list(tables.MODERATE_SEVERITY_MEDS),
            side_effects=["drowsiness", "nausea", "dizziness", "confusion", "fatigue"] * 4,
            treatments=["physical therapy", "surgery", "injections"],
        ),
        functional_limitations=FunctionalLimitations(
            sitting_minutes=0, standing_minutes=0, walking_blocks=0, lifting_pounds=0,
            concentration_issues=True, memory_issues=True, social_difficulties=True,
            expected_absences=30, needs_to_lie_down=True,
            assistive_devices=["cane", "walker", "wheelchair", "brace", "oxygen"],
        ),
        work_history=WorkHistory(
            jobs=[Job(title=f"{keyword} worker", years=10) for keyword in tables.UNSKILLED_KEYWORDS],
            heaviest_lifting=WorkDemand.VERY_HEAVY,
            total_work_years=45,
        ),
    )


def _minimal_record() -> IntakeRecord:
    """Only facts that count against the claim."""
    return _record(
        age=25,
        education=Education(level=EducationLevel.COLLEGE),
        work_history=WorkHistory(heaviest_lifting=WorkDemand.SEDENTARY),
    )


@pytest.mark.unit
class TestScoringProperties:
    """Test properties that hold for every record."""

    @pytest.mark.parametrize("age,severity,education,demand,lifting", CASES)
    def test_hospitalizations_never_lower_score(self, age, severity, education, demand, lifting):
        """Test that going from no hospital stays to three never lowers the score."""
        none = _case(age, severity, education, demand, lifting, hospitalizations=0)
        three = _case(age, severity, education, demand, lifting, hospitalizations=3)

        assert (
            calculate_score(three, today=TODAY).total_score
            >= calculate_score(none, today=TODAY).total_score
        )

    @pytest.mark.parametrize("second", ["depression", "copd", "migraine", "diabetes"])
    @pytest.mark.parametrize("age,severity,education,demand,lifting", CASES)
    def test_second_condition_never_lowers_score(self, age, severity, education, demand, lifting, second):
        """Test that a second listed condition never lowers the score."""
        one = _case(age, severity, education, demand, lifting, conditions=["lupus"])
        two = _case(age, severity, education, demand, lifting, conditions=["lupus", second])

        assert (
            calculate_score(two, today=TODAY).total_score
            >= calculate_score(one, today=TODAY).total_score
        )

    @pytest.mark.parametrize("age,severity,education,demand,lifting", CASES)
    def test_older_caller_never_scores_lower(self, age, severity, education, demand, lifting):
        """Test that the same case at 56 never scores below the same case at 48."""
        at_48 = _case(48, severity, education, demand, lifting)
        at_56 = _case(56, severity, education, demand, lifting)

        assert (
            calculate_score(at_56, today=TODAY).total_score
            >= calculate_score(at_48, today=TODAY).total_score
        )

    @pytest.mark.parametrize("record_factory", [_maximal_record, _minimal_record, IntakeRecord])
    def test_score_stays_on_scale(self, record_factory):
        """Test that extreme records are clamped to 0..100."""
        final, _, _ = calculate_raw_score(record_factory(), today=TODAY)
        result = calculate_score(record_factory(), today=TODAY)

        assert 0 <= result.total_score <= 100
        if final > 100:
            assert result.total_score == 100
        if final < 0:
            assert result.total_score == 0

    def test_maximal_record_is_top_tier(self):
        """Test the fully populated record lands exactly on the ceiling."""
        result = calculate_score(_maximal_record(), today=TODAY)

        assert result.total_score == 100
        assert result.recommendation == Recommendation.HIGHLY_RECOMMENDED
