from typing import Dict, Iterable, Optional, Tuple

GRADE_BUCKETS = ("A", "B", "C", "D", "F")
NOT_GRADED = "Not Graded"


def compute_gpa(courses: Iterable[Tuple[int, Optional[float]]]) -> Tuple[float, int]:
    """Credit weighted GPA over (credits, grade_point) pairs.

    Ungraded courses count in neither the numerator nor the denominator.
    Returns the GPA rounded to two decimals and the graded credit total.
    """
    total_credits = 0
    total_points = 0.0
    for credits, grade_point in courses:
        if grade_point is None:
            continue
        total_credits += credits
        total_points += grade_point * credits
    gpa = round(total_points / total_credits, 2) if total_credits > 0 else 0
    return gpa, total_credits


def grade_distribution(letters: Iterable[Optional[str]]) -> Dict[str, int]:
    distribution = {bucket: 0 for bucket in GRADE_BUCKETS}
    distribution[NOT_GRADED] = 0
    for letter in letters:
        if not letter:
            distribution[NOT_GRADED] += 1
            continue
        bucket = letter[0].upper()
        if bucket in distribution:
            distribution[bucket] += 1
    return distribution


def score_percentage(score: float, total_marks: float) -> Optional[float]:
    if score is None or not total_marks:
        return None
    return score / total_marks * 100


def weighted_score(items: Iterable[Tuple[Optional[float], float, float]]) -> Tuple[float, float]:
    """Sum (percentage * weightage / 100) over (score, total_marks, weightage).

    Weightages are taken as given; nothing checks that they add up to 100.
    Returns (total_weightage, weighted_score) with the score rounded to 2 places.
    """
    total_weightage = 0.0
    weighted = 0.0
    for score, total_marks, weightage in items:
        percentage = score_percentage(score, total_marks)
        if percentage is None or not weightage or weightage <= 0:
            continue
        total_weightage += weightage
        weighted += percentage * weightage / 100
    return total_weightage, round(weighted, 2)


def attendance_percentage(present_count: int, total_classes: int) -> float:
    # total_classes is the number of distinct dates recorded for the course
    if total_classes <= 0:
        return 0
    return round(present_count / total_classes * 100, 2)
