"""
Streamlit exercise widgets for test mode.

Each widget takes the exercise, its restored initial answers and an
on_answers_collected callback. It rebuilds its payload on every rerun (i.e. every
edit) and reports it whenever it changed. Payload shapes match what grading reads.
"""
from typing import Any, Callable, Dict, List, Optional

import streamlit as st

from engine import DRAG_DROP, DROPDOWN, FILL_BLANK, IMAGE_HOTSPOT, MULTIPLE_CHOICE
from src.grading import lookup_answer
from src.models import Exercise

OnCollect = Callable[[Any], None]
OPTION_LABELS = "ABCDEFGHIJ"


def _report(key: str, payload: Any, on_answers_collected: OnCollect) -> None:
    key = f"{key}-reported"
    if key not in st.session_state:
        # first render only shows the restored answers
        st.session_state[key] = payload
        return
    if st.session_state[key] != payload:
        st.session_state[key] = payload
        on_answers_collected(payload)


def _choice_index(options: List[Any], value: Any) -> Optional[int]:
    return options.index(value) if value in options else None


def render_multiple_choice(exercise: Exercise, initial_answers: Any, on_answers_collected: OnCollect, scope: str = "") -> None:
    base = f"{scope}-{exercise.id}"
    payload: Dict[int, int] = {}
    for qi, question in enumerate(exercise.content.get("questions") or []):
        options = question.get("options") or []
        n_opts = min(len(options), len(OPTION_LABELS))
        saved = lookup_answer(initial_answers, qi)
        choice = st.radio(
            question.get("question") or f"Question {qi + 1}",
            list(range(n_opts)),
            format_func=lambda i, opts=options: f"{OPTION_LABELS[i]}. {opts[i]}",
            index=saved if isinstance(saved, int) and 0 <= saved < n_opts else None,
            key=f"{base}-mc-{qi}",
        )
        if choice is not None:
            payload[qi] = choice
    _report(base, payload, on_answers_collected)


def render_fill_blank(exercise: Exercise, initial_answers: Any, on_answers_collected: OnCollect, scope: str = "") -> None:
    base = f"{scope}-{exercise.id}"
    payload: Dict[int, Dict[int, str]] = {}
    for qi, question in enumerate(exercise.content.get("questions") or []):
        st.markdown(question.get("question") or f"Question {qi + 1}")
        saved = lookup_answer(initial_answers, qi)
        typed = {}
        for bi, _blank in enumerate(question.get("blanks") or []):
            typed[bi] = st.text_input(
                f"Blank {bi + 1}",
                value=lookup_answer(saved, bi) or "",
                key=f"{base}-fb-{qi}-{bi}",
            )
        payload[qi] = typed
    _report(base, payload, on_answers_collected)


def render_drag_drop(exercise: Exercise, initial_answers: Any, on_answers_collected: OnCollect, scope: str = "") -> None:
    base = f"{scope}-{exercise.id}"
    payload: Dict[int, Dict[str, str]] = {}
    for qi, question in enumerate(exercise.content.get("questions") or []):
        st.markdown(question.get("question") or f"Question {qi + 1}")
        items = question.get("items") or []
        item_ids = [None] + [it.get("id") for it in items]
        text_by_id = {it.get("id"): it.get("text") for it in items}
        saved = lookup_answer(initial_answers, qi)
        placements = {}
        for zi, zone in enumerate(question.get("drop_zones") or []):
            chosen = st.selectbox(
                zone.get("label") or f"Position {zi + 1}",
                item_ids,
                format_func=lambda item_id, texts=text_by_id: "—" if item_id is None else texts.get(item_id, ""),
                index=_choice_index(item_ids, lookup_answer(saved, zone.get("id"))) or 0,
                key=f"{base}-dd-{qi}-{zone.get('id')}",
            )
            if chosen is not None:
                placements[zone.get("id")] = chosen
        payload[qi] = placements
    _report(base, payload, on_answers_collected)


def render_dropdown(exercise: Exercise, initial_answers: Any, on_answers_collected: OnCollect, scope: str = "") -> None:
    base = f"{scope}-{exercise.id}"
    payload: Dict[int, Dict[int, str]] = {}
    for qi, question in enumerate(exercise.content.get("questions") or []):
        st.markdown(question.get("question") or f"Question {qi + 1}")
        saved = lookup_answer(initial_answers, qi)
        selected = {}
        for di, dropdown in enumerate(question.get("dropdowns") or []):
            options = list(dict.fromkeys(
                opt for opt in (dropdown.get("options") or []) + [dropdown.get("correct_answer")]
                if opt and str(opt).strip()
            ))
            choices = [""] + options
            selected[di] = st.selectbox(
                f"Choice {di + 1}",
                choices,
                index=_choice_index(choices, lookup_answer(saved, di)) or 0,
                key=f"{base}-sel-{qi}-{di}",
            )
        payload[qi] = selected
    _report(base, payload, on_answers_collected)


def render_image_hotspot(exercise: Exercise, initial_answers: Any, on_answers_collected: OnCollect, scope: str = "") -> None:
    base = f"{scope}-{exercise.id}"
    content = exercise.content
    if content.get("image_url"):
        st.image(content["image_url"])
    labels = content.get("labels") or []
    label_ids = [None] + [label.get("id") for label in labels]
    text_by_id = {label.get("id"): label.get("text") for label in labels}
    payload: Dict[str, str] = {}
    for hi, hotspot in enumerate(content.get("hotspots") or []):
        chosen = st.selectbox(
            hotspot.get("label") or f"Area {hi + 1}",
            label_ids,
            format_func=lambda label_id, texts=text_by_id: "—" if label_id is None else texts.get(label_id, ""),
            index=_choice_index(label_ids, lookup_answer(initial_answers, hotspot.get("id"))) or 0,
            key=f"{base}-hs-{hotspot.get('id')}",
        )
        if chosen is not None:
            payload[hotspot.get("id")] = chosen
    _report(base, payload, on_answers_collected)


WIDGETS: Dict[str, Callable[..., None]] = {
    MULTIPLE_CHOICE: render_multiple_choice,
    FILL_BLANK: render_fill_blank,
    DRAG_DROP: render_drag_drop,
    DROPDOWN: render_dropdown,
    IMAGE_HOTSPOT: render_image_hotspot,
}


def render_exercise(exercise: Exercise, initial_answers: Any, on_answers_collected: OnCollect, scope: str = "") -> None:
    """scope (the attempt id) keeps widget state of different attempts apart."""
    widget = WIDGETS.get(exercise.exercise_type)
    if widget is None:
        st.caption(f"Unsupported exercise type: {exercise.exercise_type}")
        return
    widget(exercise, initial_answers, on_answers_collected, scope)
