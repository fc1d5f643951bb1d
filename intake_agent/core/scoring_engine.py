"""Deterministic case viability scoring.

``calculate_score`` turns an intake record into a 0..100 score, a
recommendation tier and narrative strengths/concerns for the attorney
review. It is a pure function of the record, the reference tables in
``intake_agent.config.scoring_tables`` and the tier thresholds; missing
fields simply contribute nothing.
"""
import math
from datetime import date
from typing import List, NamedTuple, Optional

from intake_agent.config import scoring_tables as tables
from intake_agent.core.models import (
    IntakeRecord,
    Recommendation,
    ScoringResult,
    ScoringSource,
)
from intake_agent.core.validators import InputValidator


class ScoringThresholds(NamedTuple):
    """Score cut-offs for the recommendation tiers plus callback hours."""

    highly_recommended: int = 70
    recommended: int = 45
    consider_caution: int = 25
    weak_case: int = 10
    high_priority_hours: int = 24
    medium_priority_hours: int = 48

    @classmethod
    def from_settings(cls, settings) -> "ScoringThresholds":
        return cls(
            highly_recommended=settings.score_threshold_high,
            recommended=settings.score_threshold_medium,
            consider_caution=settings.score_threshold_low,
            weak_case=settings.score_threshold_minimum,
            high_priority_hours=settings.callback_hours_high,
            medium_priority_hours=settings.callback_hours_medium,
        )


DEFAULT_THRESHOLDS = ScoringThresholds()


class _Tally:
    """Running raw score with its narratives."""

    def __init__(self):
        self.points = 0.0
        self.strengths: List[str] = []
        self.concerns: List[str] = []

    def add(self, points: float, strength: Optional[str] = None, concern: Optional[str] = None):
        self.points += points
        if strength:
            self.strengths.append(strength)
        if concern:
            self.concerns.append(concern)


def round_half_up(value: float) -> int:
    """Round .5 towards positive infinity, e.g. 2.5 -> 3 and -4.5 -> -4."""
    return int(math.floor(value + 0.5))


def severity_multiplier(severity: Optional[str]) -> float:
    return tables.SEVERITY_MULTIPLIERS.get(severity, tables.DEFAULT_SEVERITY_MULTIPLIER)


def match_condition(condition: str) -> Optional[tables.ConditionScore]:
    """First reference entry whose key appears in the caller's wording."""
    lowered = condition.lower()
    for key, entry in tables.CONDITION_SCORES.items():
        if key in lowered:
            return entry
    return None


def _age_multiplier(age: Optional[int], tally: _Tally) -> float:
    if age is not None:
        for min_age, multiplier, narrative in tables.AGE_BRACKETS:
            if age >= min_age:
                tally.add(0, strength=narrative)
                return multiplier
    tally.add(0, concern=tables.UNDER_50_CONCERN)
    return tables.UNDER_50_MULTIPLIER


def _score_education(level: Optional[str], age: int, tally: _Tally) -> None:
    if level in tables.EDUCATION_BONUSES:
        older_bonus, younger_bonus, narrative = tables.EDUCATION_BONUSES[level]
        tally.add(older_bonus if age >= 50 else younger_bonus, strength=narrative)
    elif level == "college":
        tally.add(tables.COLLEGE_PENALTY, concern=tables.COLLEGE_CONCERN)


def _score_conditions(record: IntakeRecord, age: int, tally: _Tally) -> None:
    medical = record.medical
    multiplier = severity_multiplier(_value(medical.severity))
    has_mental = False
    has_physical = False

    for condition in medical.conditions:
        entry = match_condition(condition)
        if entry is None:
            tally.add(tables.UNMATCHED_CONDITION_SCORE * multiplier)
            continue

        points = entry.base_score * (0.3 + entry.approval_rate * 2.5) * multiplier
        if age >= 55:
            points += tables.CONDITION_AGE_BONUS_55
        elif age >= 50:
            points += tables.CONDITION_AGE_BONUS_50
        tally.add(points)

        if entry.category == tables.MENTAL_CATEGORY:
            has_mental = True
        else:
            has_physical = True

    count = len(medical.conditions)
    for min_count, bonus, narrative in tables.CONDITION_COUNT_BONUSES:
        if count >= min_count:
            tally.add(bonus, strength=narrative)
            break

    if has_mental and has_physical:
        tally.add(tables.COMORBIDITY_BONUS, strength=tables.COMORBIDITY_STRENGTH)


def _score_medications(record: IntakeRecord, tally: _Tally) -> None:
    medications = record.medical.medications
    for medication in medications:
        lowered = medication.lower()
        if any(name in lowered for name in tables.HIGH_SEVERITY_MEDS):
            tally.add(tables.HIGH_MED_POINTS)
        elif any(name in lowered for name in tables.MODERATE_SEVERITY_MEDS):
            tally.add(tables.MODERATE_MED_POINTS)
        else:
            tally.add(tables.OTHER_MED_POINTS)

    for min_count, bonus, narrative in tables.POLYPHARMACY_BONUSES:
        if len(medications) >= min_count:
            tally.add(bonus, strength=narrative)
            break

    side_effects = len(record.medical.side_effects)
    if side_effects:
        tally.add(min(side_effects * tables.SIDE_EFFECT_POINTS, tables.SIDE_EFFECT_CAP))


def _score_functional(record: IntakeRecord, tally: _Tally) -> None:
    fl = record.functional_limitations

    if fl.lifting_pounds is not None:
        if fl.lifting_pounds <= tables.LIFTING_SEDENTARY_LBS:
            tally.add(tables.LIFTING_SEDENTARY_POINTS, strength=tables.LIFTING_SEDENTARY_STRENGTH)
        elif fl.lifting_pounds <= tables.LIFTING_LIGHT_LBS:
            tally.add(tables.LIFTING_LIGHT_POINTS, strength=tables.LIFTING_LIGHT_STRENGTH)

    if fl.sitting_minutes is not None and fl.sitting_minutes <= tables.SITTING_LIMIT_MIN:
        tally.add(tables.SITTING_POINTS, strength=tables.SITTING_STRENGTH)
    if fl.standing_minutes is not None and fl.standing_minutes <= tables.STANDING_LIMIT_MIN:
        tally.add(tables.STANDING_POINTS, strength=tables.STANDING_STRENGTH)
    if fl.walking_blocks is not None and fl.walking_blocks <= tables.WALKING_LIMIT_BLOCKS:
        tally.add(tables.WALKING_POINTS, strength=tables.WALKING_STRENGTH)

    if fl.concentration_issues:
        tally.add(tables.CONCENTRATION_POINTS, strength=tables.CONCENTRATION_STRENGTH)
    if fl.memory_issues:
        tally.add(tables.MEMORY_POINTS, strength=tables.MEMORY_STRENGTH)
    if fl.social_difficulties:
        tally.add(tables.SOCIAL_POINTS, strength=tables.SOCIAL_STRENGTH)

    if fl.expected_absences is not None and fl.expected_absences >= tables.ABSENCE_THRESHOLD_DAYS:
        tally.add(tables.ABSENCE_POINTS, strength=tables.ABSENCE_STRENGTH)
    if fl.needs_to_lie_down:
        tally.add(tables.LIE_DOWN_POINTS, strength=tables.LIE_DOWN_STRENGTH)

    if fl.assistive_devices:
        tally.add(
            len(fl.assistive_devices) * tables.ASSISTIVE_DEVICE_POINTS,
            strength=f"Uses assistive devices: {', '.join(fl.assistive_devices)}",
        )


def _score_work_history(record: IntakeRecord, tally: _Tally) -> None:
    work = record.work_history

    demand = _value(work.heaviest_lifting)
    if demand in tables.WORK_DEMAND_SCORES:
        points, strength, concern = tables.WORK_DEMAND_SCORES[demand]
        tally.add(points, strength=strength, concern=concern)

    if any(
        keyword in job.title.lower()
        for job in work.jobs
        for keyword in tables.UNSKILLED_KEYWORDS
    ):
        tally.add(tables.UNSKILLED_POINTS, strength=tables.UNSKILLED_STRENGTH)

    if work.total_work_years and work.total_work_years >= tables.LONG_TENURE_YEARS:
        tally.add(tables.LONG_TENURE_POINTS, strength=tables.LONG_TENURE_STRENGTH)


def _score_grid_rules(record: IntakeRecord, age: int, tally: _Tally) -> None:
    # Zero or missing lifting capacity is treated as unknown
    lifting = record.functional_limitations.lifting_pounds or tables.GRID_DEFAULT_LIFTING_LBS
    limited_education = _value(record.education.level) in tables.LIMITED_EDUCATION_LEVELS

    for rule in tables.GRID_RULES:
        if (
            age >= rule.min_age
            and lifting <= rule.max_lifting_lbs
            and (limited_education or not rule.requires_limited_education)
        ):
            tally.add(rule.points, strength=rule.narrative)
            return


def _score_hospitalizations(record: IntakeRecord, tally: _Tally) -> None:
    stays = record.medical.hospitalizations or 0
    if stays >= tables.HOSPITALIZATION_MANY:
        tally.add(tables.HOSPITALIZATION_MANY_POINTS, strength=tables.HOSPITALIZATION_MANY_STRENGTH)
    elif stays >= 1:
        tally.add(stays * tables.HOSPITALIZATION_PER_STAY_POINTS)


def _value(enum_or_str) -> Optional[str]:
    return getattr(enum_or_str, "value", enum_or_str)


def get_tier(score: int, thresholds: ScoringThresholds = DEFAULT_THRESHOLDS):
    """Map a final score to (recommendation, viability, likelihood, callback timeframe)."""
    if score >= thresholds.highly_recommended:
        return (Recommendation.HIGHLY_RECOMMENDED, "Very High", "80%+",
                f"{thresholds.high_priority_hours} hours")
    if score >= thresholds.recommended:
        return (Recommendation.RECOMMENDED, "High", "60-80%",
                f"{thresholds.medium_priority_hours} hours")
    if score >= thresholds.consider_caution:
        return Recommendation.CONSIDER_CAUTION, "Medium", "40-60%", "3-5 business days"
    if score >= thresholds.weak_case:
        return Recommendation.WEAK_CASE, "Low", "20-40%", "5-7 business days"
    return Recommendation.NOT_RECOMMENDED, "Very Low", "<20%", "as time permits"


def calculate_raw_score(record: IntakeRecord, today: Optional[date] = None):
    """Unclamped composite score and narratives.

    Returns:
        Tuple of (final unrounded score, strengths, concerns)
    """
    demographics = record.demographics
    if today is not None and demographics.date_of_birth is not None:
        age = InputValidator.calculate_age(demographics.date_of_birth, today)
    else:
        age = demographics.age

    tally = _Tally()
    age_multiplier = _age_multiplier(age, tally)
    effective_age = age if age is not None else 0

    _score_education(_value(record.education.level), effective_age, tally)
    _score_conditions(record, effective_age, tally)
    _score_medications(record, tally)
    _score_functional(record, tally)
    _score_work_history(record, tally)
    _score_grid_rules(record, effective_age, tally)
    _score_hospitalizations(record, tally)

    raw = tally.points
    final = raw * tables.BASE_PORTION + raw * tables.AGE_SCALED_PORTION * age_multiplier
    return final, tally.strengths, tally.concerns


def calculate_score(
    record: IntakeRecord,
    thresholds: ScoringThresholds = DEFAULT_THRESHOLDS,
    today: Optional[date] = None,
) -> ScoringResult:
    """Score an intake record.

    Args:
        record: The intake record, possibly incomplete
        thresholds: Tier cut-offs and callback hours
        today: Reference date for the age calculation (defaults to today)

    Returns:
        Frozen ScoringResult with source ``local``
    """
    final, strengths, concerns = calculate_raw_score(record, today)
    total = max(tables.MIN_SCORE, min(tables.MAX_SCORE, round_half_up(final)))
    recommendation, viability, likelihood, callback = get_tier(total, thresholds)

    return ScoringResult(
        total_score=total,
        recommendation=recommendation,
        viability_rating=viability,
        approval_likelihood=likelihood,
        case_strengths=tuple(strengths),
        case_concerns=tuple(concerns),
        callback_timeframe=callback,
        source=ScoringSource.LOCAL,
    )
