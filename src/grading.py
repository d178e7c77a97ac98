"""
Grading engine: pure scoring of a test from its exercises and the collected answers.

Every exercise type registers one comparator in GRADERS. A comparator walks the
exercise content and emits one QuestionAttempt per gradable sub-item (a blank, a
dropdown slot, a hotspot...). Unanswered sub-items are emitted as incorrect, so
total_questions only depends on the exercise content.
"""
from typing import Any, Callable, Dict, Iterable, List, Optional

from engine import (
    DEFAULT_PASSING_SCORE,
    DRAG_DROP,
    DROPDOWN,
    FILL_BLANK,
    IMAGE_HOTSPOT,
    MULTIPLE_CHOICE,
    SUB_INDEX_STRIDE,
)
from src.models import Exercise, GradeResult, QuestionAttempt

Comparator = Callable[[Exercise, Any], List[QuestionAttempt]]


def lookup_answer(mapping: Any, key: Any) -> Any:
    """Fetch key from an answer mapping whose keys may have become strings in JSON."""
    if not isinstance(mapping, dict):
        return None
    if key in mapping:
        return mapping[key]
    return mapping.get(str(key))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def composite_index(question_index: int, sub_index: int) -> int:
    return question_index * SUB_INDEX_STRIDE + sub_index


def _check_stride(exercise: Exercise, question_index: int, count: int) -> None:
    if count > SUB_INDEX_STRIDE:
        raise ValueError(
            f"Exercise {exercise.id} question {question_index} has {count} sub-items; "
            f"at most {SUB_INDEX_STRIDE} are supported"
        )


def _questions(exercise: Exercise) -> List[Dict]:
    return exercise.content.get("questions") or []


def grade_multiple_choice(exercise: Exercise, answers: Any) -> List[QuestionAttempt]:
    rows = []
    for qi, question in enumerate(_questions(exercise)):
        selected = lookup_answer(answers, qi)
        correct = question.get("correct_answer")
        is_correct = selected is not None and not isinstance(selected, bool) and selected == correct
        rows.append(QuestionAttempt(
            exercise_id=exercise.id,
            question_index=qi,
            exercise_type=exercise.exercise_type,
            selected_answer=selected,
            correct_answer=correct,
            is_correct=is_correct,
        ))
    return rows


def accepted_answers(raw: Any) -> List[str]:
    """Split a comma-separated accepted-answer list, dropping empty entries."""
    return [a.strip() for a in _text(raw).split(",") if a.strip()]


def grade_fill_blank(exercise: Exercise, answers: Any) -> List[QuestionAttempt]:
    rows = []
    for qi, question in enumerate(_questions(exercise)):
        blanks = question.get("blanks") or []
        _check_stride(exercise, qi, len(blanks))
        typed_by_blank = lookup_answer(answers, qi)
        for bi, blank in enumerate(blanks):
            typed = _text(lookup_answer(typed_by_blank, bi))
            accepted = accepted_answers(blank.get("answer"))
            if blank.get("case_sensitive"):
                is_correct = any(typed == a for a in accepted)
            else:
                is_correct = any(typed.lower() == a.lower() for a in accepted)
            rows.append(QuestionAttempt(
                exercise_id=exercise.id,
                question_index=composite_index(qi, bi),
                exercise_type=exercise.exercise_type,
                selected_answer=typed,
                correct_answer=blank.get("answer"),
                is_correct=is_correct,
            ))
    return rows


def grade_drag_drop(exercise: Exercise, answers: Any) -> List[QuestionAttempt]:
    """Placed items are compared by displayed text, so items with equal text are interchangeable."""
    rows = []
    for qi, question in enumerate(_questions(exercise)):
        text_by_id = {str(it.get("id")): it.get("text") for it in question.get("items") or []}
        placements = lookup_answer(answers, qi)
        if not isinstance(placements, dict):
            placements = {}

        user_order = []
        for zone in question.get("drop_zones") or []:
            item_id = lookup_answer(placements, zone.get("id"))
            user_order.append(text_by_id.get(str(item_id)) if item_id is not None else None)
        correct_order = question.get("correct_order") or []
        correct_texts = [text_by_id.get(str(item_id)) for item_id in correct_order]

        rows.append(QuestionAttempt(
            exercise_id=exercise.id,
            question_index=qi,
            exercise_type=exercise.exercise_type,
            selected_answer=placements,
            correct_answer=correct_order,
            is_correct=user_order == correct_texts,
        ))
    return rows


def grade_dropdown(exercise: Exercise, answers: Any) -> List[QuestionAttempt]:
    rows = []
    for qi, question in enumerate(_questions(exercise)):
        dropdowns = question.get("dropdowns") or []
        _check_stride(exercise, qi, len(dropdowns))
        selected_by_slot = lookup_answer(answers, qi)
        for di, dropdown in enumerate(dropdowns):
            selected = _text(lookup_answer(selected_by_slot, di))
            correct = _text(dropdown.get("correct_answer"))
            rows.append(QuestionAttempt(
                exercise_id=exercise.id,
                question_index=composite_index(qi, di),
                exercise_type=exercise.exercise_type,
                selected_answer=selected,
                correct_answer=correct,
                is_correct=selected == correct,
            ))
    return rows


def grade_image_hotspot(exercise: Exercise, answers: Any) -> List[QuestionAttempt]:
    """One sub-item per hotspot. Distractor labels are never correct."""
    hotspots = exercise.content.get("hotspots") or []
    labels = exercise.content.get("labels") or []
    label_by_id = {str(label.get("id")): label for label in labels}

    rows = []
    for hi, hotspot in enumerate(hotspots):
        hotspot_id = hotspot.get("id")
        selected_id = lookup_answer(answers, hotspot_id)
        label = label_by_id.get(str(selected_id)) if selected_id is not None else None
        is_correct = (
            label is not None
            and label.get("type") != "distractor"
            and label.get("hotspot_id") == hotspot_id
        )
        expected = next(
            (l.get("id") for l in labels if l.get("hotspot_id") == hotspot_id and l.get("type") != "distractor"),
            None,
        )
        rows.append(QuestionAttempt(
            exercise_id=exercise.id,
            question_index=hi,
            exercise_type=exercise.exercise_type,
            selected_answer=selected_id,
            correct_answer=expected,
            is_correct=is_correct,
        ))
    return rows


GRADERS: Dict[str, Comparator] = {
    MULTIPLE_CHOICE: grade_multiple_choice,
    FILL_BLANK: grade_fill_blank,
    DRAG_DROP: grade_drag_drop,
    DROPDOWN: grade_dropdown,
    IMAGE_HOTSPOT: grade_image_hotspot,
}


def grade_exercise(exercise: Exercise, answers: Any) -> List[QuestionAttempt]:
    try:
        comparator = GRADERS[exercise.exercise_type]
    except KeyError:
        raise ValueError(f"No grader for exercise type {exercise.exercise_type}") from None
    return comparator(exercise, answers)


def count_gradable_items(exercises: Iterable[Exercise]) -> int:
    """Number of gradable sub-items; raises ValueError for content the audit index cannot address."""
    return sum(len(grade_exercise(ex, None)) for ex in exercises)


def grade_test(
    exercises: List[Exercise],
    answers: Optional[Dict[str, Any]],
    passing_score: int = DEFAULT_PASSING_SCORE,
) -> GradeResult:
    """
    Grade a whole test.

    Args:
        exercises: Exercises in test order
        answers: {exercise_id: payload} as collected from the exercise widgets
        passing_score: Minimum score (0-100) to pass

    Returns:
        GradeResult with score = round(100 * correct / total), 0 for an empty test
    """
    answers = answers or {}
    question_attempts: List[QuestionAttempt] = []
    for exercise in exercises:
        question_attempts.extend(grade_exercise(exercise, answers.get(exercise.id)))

    total_questions = len(question_attempts)
    total_correct = sum(1 for qa in question_attempts if qa.is_correct)
    # half up; round() would send 62.5 to 62
    score = int(100 * total_correct / total_questions + 0.5) if total_questions else 0

    return GradeResult(
        score=score,
        passed=score >= passing_score,
        total_correct=total_correct,
        total_questions=total_questions,
        question_attempts=question_attempts,
    )
