"""Reference data for the viability scoring engine.

Point values and approval rates are calibration data, kept apart from the
scoring mechanism so they can be swapped without touching the algorithm.
Everything here is read-only and shared by every call session.
"""
from types import MappingProxyType
from typing import NamedTuple, Optional


class ConditionScore(NamedTuple):
    """Reference entry for one known medical condition."""

    base_score: float
    approval_rate: float
    category: str
    blue_book_section: Optional[str] = None


MENTAL_CATEGORY = "mental"

# ============================================================================
# CONDITIONS
# ============================================================================
# Matching is a case-insensitive substring test in insertion order; the
# first key contained in the caller's wording wins.

CONDITION_SCORES = MappingProxyType({
    # High approval
    "cancer": ConditionScore(30, 0.85, "cancer", "13.00"),
    "multiple sclerosis": ConditionScore(25, 0.80, "neurological", "11.09"),
    "ms": ConditionScore(25, 0.80, "neurological", "11.09"),
    "als": ConditionScore(35, 0.95, "neurological", "11.10"),
    "lou gehrig": ConditionScore(35, 0.95, "neurological"),
    "parkinson": ConditionScore(28, 0.82, "neurological", "11.06"),
    "heart failure": ConditionScore(25, 0.78, "cardiovascular", "4.02"),
    "chf": ConditionScore(25, 0.78, "cardiovascular"),
    "congestive heart failure": ConditionScore(25, 0.78, "cardiovascular"),
    "copd": ConditionScore(22, 0.85, "respiratory", "3.02"),
    "emphysema": ConditionScore(20, 0.80, "respiratory"),
    "dialysis": ConditionScore(28, 0.88, "renal"),
    "kidney failure": ConditionScore(25, 0.85, "renal"),

    # Musculoskeletal
    "back pain": ConditionScore(20, 0.63, "musculoskeletal", "1.15"),
    "chronic back pain": ConditionScore(20, 0.63, "musculoskeletal"),
    "herniated disc": ConditionScore(22, 0.65, "musculoskeletal"),
    "degenerative disc": ConditionScore(20, 0.62, "musculoskeletal"),
    "spinal stenosis": ConditionScore(22, 0.68, "musculoskeletal"),
    "arthritis": ConditionScore(18, 0.55, "musculoskeletal", "1.18"),
    "osteoarthritis": ConditionScore(18, 0.55, "musculoskeletal"),
    "rheumatoid arthritis": ConditionScore(22, 0.70, "musculoskeletal"),
    "fibromyalgia": ConditionScore(15, 0.45, "musculoskeletal"),
    "lupus": ConditionScore(22, 0.72, "immune", "14.02"),

    # Mental health
    "depression": ConditionScore(18, 0.59, MENTAL_CATEGORY, "12.04"),
    "major depression": ConditionScore(20, 0.62, MENTAL_CATEGORY),
    "major depressive disorder": ConditionScore(20, 0.62, MENTAL_CATEGORY),
    "bipolar": ConditionScore(22, 0.68, MENTAL_CATEGORY, "12.04"),
    "bipolar disorder": ConditionScore(22, 0.68, MENTAL_CATEGORY),
    "anxiety": ConditionScore(16, 0.52, MENTAL_CATEGORY, "12.06"),
    "generalized anxiety": ConditionScore(16, 0.52, MENTAL_CATEGORY),
    "ptsd": ConditionScore(20, 0.60, MENTAL_CATEGORY, "12.15"),
    "post traumatic stress": ConditionScore(20, 0.60, MENTAL_CATEGORY),
    "schizophrenia": ConditionScore(28, 0.78, MENTAL_CATEGORY, "12.03"),
    "panic disorder": ConditionScore(18, 0.55, MENTAL_CATEGORY),
    "ocd": ConditionScore(18, 0.55, MENTAL_CATEGORY),
    "autism": ConditionScore(22, 0.65, MENTAL_CATEGORY, "12.10"),

    # Neurological
    "neuropathy": ConditionScore(18, 0.58, "neurological", "11.14"),
    "peripheral neuropathy": ConditionScore(18, 0.58, "neurological"),
    "epilepsy": ConditionScore(22, 0.65, "neurological", "11.02"),
    "seizures": ConditionScore(22, 0.65, "neurological"),
    "stroke": ConditionScore(20, 0.60, "neurological"),
    "migraine": ConditionScore(14, 0.40, "neurological"),
    "traumatic brain injury": ConditionScore(22, 0.65, "neurological", "11.18"),
    "tbi": ConditionScore(22, 0.65, "neurological"),

    # Special conditions
    "pots": ConditionScore(16, 0.45, "cardiovascular"),
    "dysautonomia": ConditionScore(16, 0.45, "cardiovascular"),
    "ehlers danlos": ConditionScore(16, 0.48, "musculoskeletal"),
    "eds": ConditionScore(16, 0.48, "musculoskeletal"),
    "crps": ConditionScore(20, 0.55, "neurological"),
    "complex regional pain": ConditionScore(20, 0.55, "neurological"),
    "chiari": ConditionScore(18, 0.50, "neurological"),

    # Other
    "diabetes": ConditionScore(12, 0.40, "endocrine"),
    "sleep apnea": ConditionScore(10, 0.35, "respiratory"),
    "chronic fatigue": ConditionScore(12, 0.38, "immune"),
    "hypertension": ConditionScore(8, 0.25, "cardiovascular"),
})

UNMATCHED_CONDITION_SCORE = 10
"""Points for a condition that matches no reference entry, before severity"""

SEVERITY_MULTIPLIERS = MappingProxyType({
    "disabling": 1.2,
    "severe": 1.0,
    "moderate": 0.75,
    "mild": 0.6,
})
DEFAULT_SEVERITY_MULTIPLIER = 0.8

# ============================================================================
# AGE & EDUCATION
# ============================================================================

# (minimum age, multiplier, strength narrative), highest bracket first
AGE_BRACKETS = (
    (60, 1.5, "Age 60+ (Approaching Retirement Age - most favorable Grid Rules)"),
    (55, 1.35, "Age 55-59 (Advanced Age - significant Grid Rule advantage)"),
    (50, 1.15, "Age 50-54 (Closely Approaching Advanced Age - Grid Rule advantage)"),
)
UNDER_50_MULTIPLIER = 0.7
UNDER_50_CONCERN = "Under 50 (must meet or equal a listing, or have severe limitations)"

# level -> (bonus when 50+, bonus under 50, narrative)
EDUCATION_BONUSES = MappingProxyType({
    "illiterate": (8, 3, "Marginal/Limited education (favorable for Grid Rules)"),
    "marginal": (8, 3, "Marginal/Limited education (favorable for Grid Rules)"),
    "limited": (5, 2, "Limited education (7th-11th grade - Grid Rule favorable)"),
})
COLLEGE_PENALTY = -5
COLLEGE_CONCERN = "College education (transferable skills may be assumed)"
LIMITED_EDUCATION_LEVELS = frozenset({"illiterate", "marginal", "limited"})

CONDITION_AGE_BONUS_55 = 10
CONDITION_AGE_BONUS_50 = 5

# (minimum count, bonus, narrative), largest first
CONDITION_COUNT_BONUSES = (
    (4, 25, "4+ medical conditions (significant combined effect)"),
    (3, 18, "3 medical conditions (combined effect consideration)"),
    (2, 10, "Multiple medical conditions"),
)
COMORBIDITY_BONUS = 15
COMORBIDITY_STRENGTH = "Mental + Physical conditions (erodes occupational base)"

# ============================================================================
# MEDICATIONS
# ============================================================================

HIGH_SEVERITY_MEDS = (
    "oxycodone", "morphine", "fentanyl", "hydrocodone", "percocet", "vicodin", "norco", "dilaudid",
    "seroquel", "zyprexa", "risperdal", "abilify", "clozapine", "haldol",
    "lithium", "depakote", "lamictal",
    "humira", "enbrel", "remicade", "methotrexate",
)
MODERATE_SEVERITY_MEDS = (
    "gabapentin", "lyrica", "cymbalta", "tramadol",
    "zoloft", "lexapro", "prozac", "effexor", "wellbutrin",
    "klonopin", "xanax", "ativan", "valium",
)
HIGH_MED_POINTS = 15
MODERATE_MED_POINTS = 8
OTHER_MED_POINTS = 3

# (minimum count, bonus, narrative or None), largest first; tiers do not stack
POLYPHARMACY_BONUSES = (
    (10, 15, "10+ medications (high treatment complexity)"),
    (7, 10, None),
    (5, 5, "5+ medications (polypharmacy)"),
)
SIDE_EFFECT_POINTS = 5
SIDE_EFFECT_CAP = 15

# ============================================================================
# FUNCTIONAL LIMITATIONS
# ============================================================================

LIFTING_SEDENTARY_LBS = 10
LIFTING_SEDENTARY_POINTS = 25
LIFTING_SEDENTARY_STRENGTH = "Sedentary lifting capacity (10 lbs or less)"
LIFTING_LIGHT_LBS = 20
LIFTING_LIGHT_POINTS = 15
LIFTING_LIGHT_STRENGTH = "Light work capacity (20 lbs or less)"

SITTING_LIMIT_MIN = 30
SITTING_POINTS = 20
SITTING_STRENGTH = "Cannot sit for extended periods (erodes sedentary base)"

STANDING_LIMIT_MIN = 15
STANDING_POINTS = 18
STANDING_STRENGTH = "Cannot stand more than 15 minutes"

WALKING_LIMIT_BLOCKS = 1
WALKING_POINTS = 15
WALKING_STRENGTH = "Cannot walk more than 1 block"

CONCENTRATION_POINTS = 12
CONCENTRATION_STRENGTH = "Concentration difficulties (impacts work pace)"
MEMORY_POINTS = 10
MEMORY_STRENGTH = "Memory problems (limits following instructions)"
SOCIAL_POINTS = 12
SOCIAL_STRENGTH = "Social interaction difficulties"

ABSENCE_THRESHOLD_DAYS = 2
ABSENCE_POINTS = 25
ABSENCE_STRENGTH = "Would miss 2+ days/month (precludes competitive employment)"

LIE_DOWN_POINTS = 15
LIE_DOWN_STRENGTH = "Needs to lie down during day"

ASSISTIVE_DEVICE_POINTS = 5

# ============================================================================
# WORK HISTORY
# ============================================================================

# demand level -> (points, strength or None, concern or None)
WORK_DEMAND_SCORES = MappingProxyType({
    "very_heavy": (25, "Very heavy work history (100+ lbs)", None),
    "heavy": (20, "Heavy work history (50-100 lbs)", None),
    "medium": (15, None, None),
    "light": (5, None, None),
    "sedentary": (-10, None, "Sedentary work history (transferable skills to desk work)"),
})

UNSKILLED_KEYWORDS = ("warehouse", "factory", "labor", "construction", "cleaning", "cashier", "assembly")
UNSKILLED_POINTS = 15
UNSKILLED_STRENGTH = "Unskilled work history (no transferable skills)"

LONG_TENURE_YEARS = 20
LONG_TENURE_POINTS = 10
LONG_TENURE_STRENGTH = "20+ years work history (credibility factor)"

# ============================================================================
# GRID RULES
# ============================================================================

GRID_DEFAULT_LIFTING_LBS = 50
"""Lifting capacity assumed when none was reported"""


class GridRule(NamedTuple):
    """One medical-vocational grid rule, evaluated in priority order."""

    min_age: int
    max_lifting_lbs: int
    requires_limited_education: bool
    points: int
    narrative: str


GRID_RULES = (
    GridRule(60, 20, False, 35, "Grid Rule 202.01 may apply (60+, light RFC)"),
    GridRule(55, 20, True, 30, "Grid Rule 202.04 may apply (55+, limited education, light RFC)"),
    GridRule(50, 10, True, 25, "Grid Rule 201.14 may apply (50+, limited education, sedentary RFC)"),
)

# ============================================================================
# HOSPITALIZATIONS & FINAL COMPOSITION
# ============================================================================

HOSPITALIZATION_MANY = 3
HOSPITALIZATION_MANY_POINTS = 10
HOSPITALIZATION_MANY_STRENGTH = "3+ hospitalizations in past year"
HOSPITALIZATION_PER_STAY_POINTS = 3

BASE_PORTION = 0.7
"""Share of the raw score left untouched by the age multiplier"""

AGE_SCALED_PORTION = 0.3
"""Share of the raw score scaled by the age multiplier"""

MIN_SCORE = 0
MAX_SCORE = 100
