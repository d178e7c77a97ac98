"""Exercise widgets in a headless Streamlit run."""
from streamlit.testing.v1 import AppTest


def multiple_choice_page():
    import streamlit as st

    from conftest import multiple_choice
    from src.exercise_widgets import render_exercise

    if "collected" not in st.session_state:
        st.session_state["collected"] = []
    render_exercise(multiple_choice(), {"0": 1}, st.session_state["collected"].append, scope="a1")


def fill_blank_page():
    import streamlit as st

    from conftest import fill_blank
    from src.exercise_widgets import render_exercise

    if "collected" not in st.session_state:
        st.session_state["collected"] = []
    render_exercise(fill_blank(), {"0": {"0": "Paris"}}, st.session_state["collected"].append, scope="a1")


def test_restored_choice_is_shown_but_not_reported():
    at = AppTest.from_function(multiple_choice_page).run()
    assert not at.exception
    assert at.radio[0].value == 1
    assert at.session_state["collected"] == []


def test_edit_reports_full_payload():
    at = AppTest.from_function(multiple_choice_page).run()
    at.radio[0].set_value(2).run()
    assert at.session_state["collected"] == [{0: 2}]


def test_fill_blank_restores_and_reports_edits():
    at = AppTest.from_function(fill_blank_page).run()
    assert [t.value for t in at.text_input] == ["Paris", ""]

    at.text_input[1].input("river").run()
    assert at.session_state["collected"] == [{0: {0: "Paris", 1: "river"}}]
