import pytest

from psyconnect.core.errors import IllegalTransition
from psyconnect.conversation.readiness import completion_percentage
from psyconnect.conversation.stages import Stage, can_transition, reset, transition
from psyconnect.conversation.state import BookingDraft, IntakeData

from conftest import FULL_INTAKE, make_state


@pytest.mark.parametrize("filled,expected", [(0, 0), (1, 13), (4, 50), (5, 63), (6, 75), (7, 88)])
def test_completion_rounds_half_up(filled, expected):
    keys = list(FULL_INTAKE)[:filled]
    intake = IntakeData(**{k: FULL_INTAKE[k] for k in keys})
    assert completion_percentage(intake, phq9_completed=False) == expected


def test_completion_counts_questionnaire():
    assert completion_percentage(IntakeData(**FULL_INTAKE), phq9_completed=True) == 100


def test_blank_strings_do_not_count():
    assert completion_percentage(IntakeData(chief_complaint="   "), phq9_completed=False) == 0


def test_no_skipping_or_going_back():
    assert not can_transition(Stage.INTAKE, Stage.SUMMARY)
    assert not can_transition(Stage.SUMMARY, Stage.PHQ9)
    assert not can_transition(Stage.COMPLETE, Stage.INTAKE)
    state = make_state(**FULL_INTAKE)
    with pytest.raises(IllegalTransition):
        transition(state, Stage.RECOMMENDATION)
    assert state.stage == Stage.INTAKE


def test_phq9_needs_threshold_and_patient_confirmation():
    state = make_state(chief_complaint="low mood")
    state.patient_ready_for_summary = True
    with pytest.raises(IllegalTransition):
        transition(state, Stage.PHQ9)

    state = make_state(**FULL_INTAKE)
    with pytest.raises(IllegalTransition):
        transition(state, Stage.PHQ9)
    state.patient_ready_for_summary = True
    transition(state, Stage.PHQ9)
    assert state.stage == Stage.PHQ9
    assert state.intake_complete


def test_summary_needs_nine_answers():
    state = make_state(**FULL_INTAKE)
    state.patient_ready_for_summary = True
    transition(state, Stage.PHQ9)
    state.phq9.responses = [1] * 8
    with pytest.raises(IllegalTransition):
        transition(state, Stage.SUMMARY)
    state.phq9.record(2)
    transition(state, Stage.SUMMARY)
    assert state.phq9_score == 10
    assert state.phq9_severity == "Moderate"


def test_booking_needs_candidate_selection():
    state = make_state(**FULL_INTAKE)
    state.stage = Stage.RECOMMENDATION
    state.candidates = ["psy-001"]
    state.selected_psychiatrist_id = "psy-002"
    with pytest.raises(IllegalTransition):
        transition(state, Stage.BOOKING)
    state.selected_psychiatrist_id = "psy-001"
    transition(state, Stage.BOOKING)


def test_complete_from_booking_needs_sent_email():
    state = make_state(**FULL_INTAKE)
    state.stage = Stage.BOOKING
    state.booking = BookingDraft(psychiatrist_id="psy-001", subject="s", body="b", approved=True)
    with pytest.raises(IllegalTransition):
        transition(state, Stage.COMPLETE)
    state.booking.sent = True
    transition(state, Stage.COMPLETE)


def test_reset_clears_everything():
    state = make_state(**FULL_INTAKE)
    state.stage = Stage.RECOMMENDATION
    state.covered_topics.add("sleep")
    state.phq9.responses = [0] * 9
    fresh = reset(state)
    assert fresh.session_id == state.session_id
    assert fresh.stage == Stage.INTAKE
    assert fresh.completion == 0
    assert not fresh.covered_topics
    assert fresh.phq9.responses == []
    assert fresh.intake == IntakeData()
