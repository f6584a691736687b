"""Tests for dialog.py — reminder-creation state machine."""

from dose_bot.dialog import (
    BAD_CHOICE_TEXT,
    BAD_COURSE_TEXT,
    CANCELLED_TEXT,
    EMPTY_NAME_TEXT,
    IDLE_TEXT,
    RESTART_TEXT,
    USE_BUTTONS_TEXT,
    Cancelled,
    CoursePicked,
    CustomCourseRequested,
    Delete,
    DialogState,
    DialogStore,
    Edit,
    HourPicked,
    PendingDialog,
    Prompt,
    ReminderDraft,
    Reply,
    Save,
    StartDialog,
    TextEntered,
    TimePicked,
    transition,
)

S = DialogState


def _at(state, **kw) -> PendingDialog:
    defaults = {"medicine": "Aspirin", "hour": 9, "minute": 15, "message_id": 50}
    defaults.update(kw)
    return PendingDialog(state=state, **defaults)


def test_start_prompts_for_medicine():
    result = transition(None, StartDialog())

    assert result.state is S.WAITING_MEDICINE
    (prompt,) = result.effects
    assert isinstance(prompt, Prompt)
    assert prompt.keyboard[0].buttons[0].action == "cancel"


def test_start_replaces_dialog_in_progress():
    result = transition(_at(S.WAITING_COURSE), StartDialog())

    assert result.pending == PendingDialog()


def test_medicine_text_moves_to_hour_picker():
    result = transition(PendingDialog(message_id=10), TextEntered("  Aspirin  "))

    assert result.state is S.WAITING_HOUR
    assert result.pending.medicine == "Aspirin"
    assert result.pending.message_id is None
    delete, prompt = result.effects
    assert delete == Delete(10)
    assert isinstance(prompt, Prompt)
    assert "Aspirin" in prompt.text
    hours = [int(b.data) for row in prompt.keyboard for b in row.buttons if b.action == "hour"]
    assert hours == list(range(6, 24))


def test_blank_medicine_reprompts():
    pending = PendingDialog()

    result = transition(pending, TextEntered("   "))

    assert result.pending == pending
    assert result.effects == (Reply(EMPTY_NAME_TEXT),)


def test_medicine_name_is_capped():
    result = transition(PendingDialog(), TextEntered("x" * 300))

    assert len(result.pending.medicine) == 100


def test_hour_edits_prompt_into_minute_picker():
    pending = _at(S.WAITING_HOUR, hour=0, minute=0, message_id=None)

    result = transition(pending, HourPicked(9, 77))

    assert result.state is S.WAITING_MINUTE
    assert result.pending.hour == 9
    assert result.pending.message_id == 77
    (edit,) = result.effects
    assert isinstance(edit, Edit)
    assert edit.message_id == 77
    assert [b.data for b in edit.keyboard[0].buttons] == ["9:0", "9:15", "9:30", "9:45"]


def test_time_edits_prompt_into_course_picker():
    result = transition(_at(S.WAITING_MINUTE, minute=0), TimePicked(9, 15, 77))

    assert result.state is S.WAITING_COURSE
    assert (result.pending.hour, result.pending.minute) == (9, 15)
    (edit,) = result.effects
    data = [b.data for row in edit.keyboard for b in row.buttons if b.action == "course"]
    assert data == ["7", "14", "21", "30", "60", "90", "0", "custom"]


def test_preset_course_saves_draft():
    result = transition(_at(S.WAITING_COURSE), CoursePicked(7, 77))

    assert result.pending is None
    assert result.effects == (
        Delete(77),
        Save(ReminderDraft(medicine="Aspirin", hour=9, minute=15, course_days=7)),
    )


def test_unbounded_course_saves_zero():
    result = transition(_at(S.WAITING_COURSE), CoursePicked(0, 77))

    assert result.effects[-1] == Save(ReminderDraft("Aspirin", 9, 15, 0))


def test_full_happy_path_produces_one_save():
    pending = None
    saves = []
    for event in (
        StartDialog(),
        TextEntered("Aspirin"),
        HourPicked(9, 1),
        TimePicked(9, 15, 1),
        CoursePicked(7, 1),
    ):
        result = transition(pending, event)
        pending = result.pending
        saves.extend(e for e in result.effects if isinstance(e, Save))

    assert pending is None
    assert saves == [Save(ReminderDraft("Aspirin", 9, 15, 7))]


def test_custom_course_flow():
    result = transition(_at(S.WAITING_COURSE), CustomCourseRequested(77))
    assert result.state is S.WAITING_CUSTOM_COURSE
    assert result.effects[0] == Delete(77)
    assert isinstance(result.effects[1], Prompt)

    waiting = result.pending
    rejected = transition(waiting, TextEntered("400"))
    assert rejected.pending == waiting
    assert rejected.effects == (Reply(BAD_COURSE_TEXT),)

    not_a_number = transition(waiting, TextEntered("two weeks"))
    assert not_a_number.state is S.WAITING_CUSTOM_COURSE

    accepted = transition(waiting, TextEntered(" 40 "))
    assert accepted.pending is None
    assert accepted.effects[-1] == Save(ReminderDraft("Aspirin", 9, 15, 40))


def test_custom_course_deletes_its_prompt():
    pending = _at(S.WAITING_CUSTOM_COURSE, message_id=88)

    result = transition(pending, TextEntered("10"))

    assert result.effects[0] == Delete(88)


def test_custom_course_zero_rejected():
    pending = _at(S.WAITING_CUSTOM_COURSE)

    assert transition(pending, TextEntered("0")).effects == (Reply(BAD_COURSE_TEXT),)


def test_cancel_from_any_state():
    for state in S:
        if state is S.NONE:
            continue
        result = transition(_at(state), Cancelled(77))

        assert result.pending is None
        assert result.effects == (Delete(77), Reply(CANCELLED_TEXT))


def test_stale_button_without_dialog_restarts():
    result = transition(None, HourPicked(9, 77))

    assert result.pending is None
    assert result.effects == (Delete(77), Reply(RESTART_TEXT))


def test_button_with_empty_medicine_restarts():
    result = transition(_at(S.WAITING_COURSE, medicine=""), CoursePicked(7, 77))

    assert result.pending is None
    assert result.effects == (Delete(77), Reply(RESTART_TEXT))


def test_custom_course_text_with_empty_medicine_removes_prompt():
    pending = _at(S.WAITING_CUSTOM_COURSE, medicine="", message_id=88)

    result = transition(pending, TextEntered("10"))

    assert result.pending is None
    assert result.effects == (Delete(88), Reply(RESTART_TEXT))


def test_custom_course_text_with_empty_medicine_and_no_prompt():
    pending = _at(S.WAITING_CUSTOM_COURSE, medicine="", message_id=None)

    result = transition(pending, TextEntered("10"))

    assert result.effects == (Reply(RESTART_TEXT),)


def test_mismatched_button_is_ignored():
    pending = _at(S.WAITING_HOUR)

    result = transition(pending, CoursePicked(7, 77))

    assert result.pending == pending
    assert result.effects == ()


def test_out_of_range_choice_rejected():
    assert transition(_at(S.WAITING_HOUR), HourPicked(-1, 5)).effects == (
        Reply(BAD_CHOICE_TEXT),
    )
    assert transition(_at(S.WAITING_MINUTE), TimePicked(9, 20, 5)).effects == (
        Reply(BAD_CHOICE_TEXT),
    )
    assert transition(_at(S.WAITING_COURSE), CoursePicked(8, 5)).effects == (
        Reply(BAD_CHOICE_TEXT),
    )


def test_text_during_button_step_hints():
    pending = _at(S.WAITING_MINUTE)

    result = transition(pending, TextEntered("9:15"))

    assert result.pending == pending
    assert result.effects == (Reply(USE_BUTTONS_TEXT),)


def test_text_without_dialog_hints():
    assert transition(None, TextEntered("hello")).effects == (Reply(IDLE_TEXT),)


def test_transition_is_pure():
    pending = _at(S.WAITING_HOUR)

    assert transition(pending, HourPicked(9, 1)) == transition(pending, HourPicked(9, 1))
    assert pending.state is S.WAITING_HOUR


# --- DialogStore ---


def test_store_tracks_state_per_user():
    store = DialogStore()

    store.apply(1, StartDialog())
    store.apply(1, TextEntered("Aspirin"))
    store.apply(2, StartDialog())

    assert store.state(1) is S.WAITING_HOUR
    assert store.state(2) is S.WAITING_MEDICINE
    assert store.state(3) is S.NONE
    assert len(store) == 2


def test_store_drops_finished_dialogs():
    store = DialogStore()
    store.apply(1, StartDialog())

    store.apply(1, Cancelled(5))

    assert store.get(1) is None
    assert len(store) == 0


def test_clear_returns_discarded_dialog():
    store = DialogStore()
    store.apply(1, StartDialog())

    assert store.clear(1) is not None
    assert store.clear(1) is None


def test_attach_message_only_for_matching_state():
    store = DialogStore()
    store.apply(1, StartDialog())

    assert store.attach_message(1, 10, S.WAITING_HOUR) is False
    assert store.attach_message(1, 10, S.WAITING_MEDICINE) is True
    assert store.attach_message(1, 11, S.WAITING_MEDICINE) is False
    assert store.get(1).message_id == 10


def test_tz_label_in_hour_prompt():
    store = DialogStore(tz_label="Asia/Yekaterinburg")
    store.apply(1, StartDialog())

    result = store.apply(1, TextEntered("Aspirin"))

    assert "Asia/Yekaterinburg" in result.effects[-1].text
