# Highest first; position in this list is the grade's rank.
GRADE_SCALE = [
    ("A+", 4.0),
    ("A", 4.0),
    ("A-", 3.7),
    ("B+", 3.3),
    ("B", 3.0),
    ("B-", 2.7),
    ("C+", 2.3),
    ("C", 2.0),
    ("C-", 1.7),
    ("D+", 1.3),
    ("D", 1.0),
    ("D-", 0.7),
    ("F", 0.0),
]

# Pass/satisfactory marks complete a course but carry no grade points.
PASSING_MARKS = {"P", "S", "CR"}

_RANK = {grade: len(GRADE_SCALE) - index for index, (grade, _) in enumerate(GRADE_SCALE)}
_POINTS = dict(GRADE_SCALE)


def normalize_grade(grade: str | None) -> str:
    return (grade or "").strip().upper()


def is_known_grade(grade: str | None) -> bool:
    normalized = normalize_grade(grade)
    return normalized in _RANK or normalized in PASSING_MARKS


def grade_rank(grade: str | None) -> int:
    """Rank on the ordered scale; unknown grades rank below F."""
    return _RANK.get(normalize_grade(grade), 0)


def grade_points(grade: str | None) -> float | None:
    return _POINTS.get(normalize_grade(grade))


def meets_minimum(grade: str | None, minimum: str | None) -> bool:
    normalized = normalize_grade(grade)
    if not minimum:
        # Any completion counts except a failing or unrecognised mark.
        return normalized in PASSING_MARKS or grade_rank(normalized) > grade_rank("F")
    return grade_rank(normalized) >= grade_rank(minimum)


def calculate_gpa(records: list[tuple[str, int | None]]) -> tuple[float | None, int]:
    """
    GPA over (grade, credits) pairs. Pass/fail marks and rows without credits
    are skipped. Returns (gpa, graded credits).
    """
    total_points = 0.0
    total_credits = 0
    for grade, credits in records:
        if not credits:
            continue
        points = grade_points(grade)
        if points is None:
            continue
        total_points += points * credits
        total_credits += credits

    if total_credits == 0:
        return None, 0
    return round(total_points / total_credits, 2), total_credits
