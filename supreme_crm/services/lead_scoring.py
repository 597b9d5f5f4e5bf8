"""Lead scoring: a 0-100 sales-readiness score for a prospect.

Six additive buckets, each capped independently:

  profile_completeness  20   email, phone, LinkedIn URL, position, company
  job_title             25   first matching seniority tier only
  company_size          15   employee count bands
  industry_fit          10   automotive / retail keywords in the industry
  engagement            20   email / LinkedIn interactions, appointments
  enrichment            10   enriched flag, LinkedIn connection count

score_prospect() is pure: it reads the prospect snapshot and its history
and never touches the session or the clock. Malformed values score as
absent rather than raising.
"""

from collections.abc import Mapping

from supreme_crm.models.enums import InteractionType

MAX_SCORE = 100

# (keywords, points, level), checked in order; first hit wins.
TITLE_TIERS = [
    (("owner", "president", "ceo"), 25, "Decision Maker"),
    (("gm", "general manager", "director"), 20, "High-Level"),
    (("f&i", "finance", "manager"), 15, "Direct Target"),
    (("sales",), 10, "Secondary Target"),
]

# (exclusive lower bound, points)
COMPANY_SIZE_BANDS = [
    (100, 15),
    (50, 12),
    (20, 10),
    (10, 7),
]
SMALL_COMPANY_POINTS = 5

INDUSTRY_TIERS = [
    (("automotive", "auto", "dealer"), 10),
    (("retail", "sales"), 5),
]

LINKEDIN_TYPES = (
    InteractionType.LINKEDIN_MESSAGE,
    InteractionType.LINKEDIN_CONNECTION,
)


def _field(record, name):
    """Read ``name`` from a model instance or a mapping."""
    if record is None:
        return None
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _text(value):
    if not isinstance(value, str):
        return ""
    return value.strip()


def _number(value):
    """Positive int/float, else None. Booleans and strings are not numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value or value <= 0:  # NaN or non-positive
        return None
    return value


def _score_profile(prospect):
    weights = [
        ("email", "email", 5),
        ("phone", "phone", 5),
        ("linkedin", "linkedin_url", 5),
        ("position", "position", 3),
        ("company", "company", 2),
    ]
    details = {}
    score = 0
    for label, attr, points in weights:
        present = bool(_text(_field(prospect, attr)))
        details[label] = present
        if present:
            score += points
    return {"score": score, "max": 20, "details": details}


def _score_title(prospect):
    title = _text(_field(prospect, "position"))
    lowered = title.lower()
    for keywords, points, level in TITLE_TIERS:
        for keyword in keywords:
            if keyword in lowered:
                return {
                    "score": points,
                    "max": 25,
                    "title": title or None,
                    "level": level,
                    "matched": keyword,
                }
    return {
        "score": 0,
        "max": 25,
        "title": title or None,
        "level": None,
        "matched": None,
    }


def _score_company_size(prospect):
    count = _number(_field(prospect, "employee_count"))
    score = 0
    if count is not None:
        score = SMALL_COMPANY_POINTS
        for floor, points in COMPANY_SIZE_BANDS:
            if count > floor:
                score = points
                break
    return {"score": score, "max": 15, "employee_count": count}


def _score_industry(prospect):
    industry = _text(_field(prospect, "industry"))
    lowered = industry.lower()
    for keywords, points in INDUSTRY_TIERS:
        for keyword in keywords:
            if keyword in lowered:
                return {
                    "score": points,
                    "max": 10,
                    "industry": industry,
                    "matched": keyword,
                }
    return {"score": 0, "max": 10, "industry": industry or None, "matched": None}


def _interaction_type(interaction):
    return InteractionType.parse(_field(interaction, "type"))


def _score_engagement(interactions, appointments):
    types = [_interaction_type(i) for i in interactions]
    email_count = sum(1 for t in types if t is InteractionType.EMAIL)
    linkedin_count = sum(1 for t in types if t in LINKEDIN_TYPES)

    score = 0
    if email_count > 0:
        score += 5
    if email_count > 2:
        score += 5
    if linkedin_count > 0:
        score += 5
    if appointments:
        score += 5

    return {
        "score": score,
        "max": 20,
        "interactions": len(interactions),
        "email_interactions": email_count,
        "linkedin_interactions": linkedin_count,
        "appointments": len(appointments),
    }


def _score_enrichment(prospect):
    enriched = _field(prospect, "enriched") is True
    linkedin_data = _field(prospect, "linkedin_data")
    connections = None
    if isinstance(linkedin_data, Mapping):
        connections = _number(linkedin_data.get("connections"))

    score = 5 if enriched else 0
    if connections is not None:
        if connections > 500:
            score += 5
        elif connections > 200:
            score += 3

    return {
        "score": score,
        "max": 10,
        "enriched": enriched,
        "connections": connections,
    }


def score_prospect(prospect, interactions=None, appointments=None):
    """Compute the lead score and its explanation.

    Args:
        prospect: Prospect model or mapping with the same attribute names.
        interactions: iterable of Interaction models/mappings. Defaults to
            the prospect's own ``interactions`` when omitted.
        appointments: iterable of Appointment models/mappings. Defaults to
            the prospect's own ``appointments`` when omitted.

    Returns:
        dict: {"score": int, "breakdown": {bucket: {...}}}
    """
    if interactions is None:
        interactions = _field(prospect, "interactions")
    if appointments is None:
        appointments = _field(prospect, "appointments")
    interactions = list(interactions or [])
    appointments = list(appointments or [])

    breakdown = {
        "profile_completeness": _score_profile(prospect),
        "job_title": _score_title(prospect),
        "company_size": _score_company_size(prospect),
        "industry_fit": _score_industry(prospect),
        "engagement": _score_engagement(interactions, appointments),
        "enrichment": _score_enrichment(prospect),
    }
    total = sum(bucket["score"] for bucket in breakdown.values())
    return {"score": max(0, min(total, MAX_SCORE)), "breakdown": breakdown}
