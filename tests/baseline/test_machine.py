"""Tests for vipcli.engine.machine: prompt loop transitions."""
import dataclasses

import pytest

from vipcli.engine.machine import (
    INVALID_COMMAND,
    RECONNECTING,
    BindPlaceholder,
    Dispatch,
    DispatchFailed,
    DispatchSucceeded,
    EndOutput,
    Exit,
    FinishCommand,
    Interrupted,
    LineSubmitted,
    OpenSession,
    OutputEnded,
    OutputFailed,
    PauseInput,
    Prompt,
    PromptState,
    Reconnected,
    ReconnectAttempt,
    Reopen,
    ReportDispatchError,
    ReportError,
    ResumeInput,
    Say,
    SendCancelByte,
    SessionLost,
    State,
    TransportCancelled,
    TransportFailed,
    TransportUnauthorized,
    commandForDispatch,
    isValidLine,
    transition,
)
from vipcli.engine.session import Session


def streaming(**overrides) -> PromptState:
    return dataclasses.replace(
        PromptState(state=State.STREAMING, commandRunning=True), **overrides
    )


# -----------------------------------------------------------------------
# TestLineHandling
# -----------------------------------------------------------------------


class TestLineHandling:
    def test_valid_line_pauses_input_and_dispatches_without_prefix(self):
        prompt, effects = transition(PromptState(), LineSubmitted("wp option get siteurl"))
        assert prompt.state is State.AWAITING_DISPATCH
        assert effects == [PauseInput(), Dispatch("option get siteurl")]

    def test_only_first_prefix_is_stripped(self):
        assert commandForDispatch("wp post list --search='wp wp'") == "post list --search='wp wp'"

    def test_invalid_line_is_not_dispatched(self):
        prompt, effects = transition(PromptState(), LineSubmitted("option get siteurl"))
        assert prompt.state is State.IDLE
        assert effects == [Say(INVALID_COMMAND, "error"), Prompt()]

    def test_bare_wp_without_space_is_invalid(self):
        assert not isValidLine("wp")

    def test_cancel_char_is_valid(self):
        assert isValidLine("\x03")

    def test_log_mode_accepts_anything(self):
        assert isValidLine("whatever", logMode=True)
        prompt, effects = transition(PromptState(logMode=True), LineSubmitted("wp "))
        assert prompt.state is State.AWAITING_DISPATCH
        assert Dispatch("") in effects

    def test_empty_line_just_reprompts(self):
        prompt, effects = transition(PromptState(), LineSubmitted(""))
        assert prompt == PromptState()
        assert effects == [Prompt()]

    def test_exit_closes(self):
        prompt, effects = transition(PromptState(), LineSubmitted("exit"))
        assert prompt.state is State.CLOSED
        assert effects == [Exit(0)]

    def test_line_ignored_while_command_running(self):
        before = streaming()
        prompt, effects = transition(before, LineSubmitted("wp cache flush"))
        assert prompt == before
        assert effects == []

    def test_line_ignored_while_awaiting_dispatch(self):
        before = PromptState(state=State.AWAITING_DISPATCH)
        assert transition(before, LineSubmitted("wp cache flush")) == (before, [])


# -----------------------------------------------------------------------
# TestDispatch
# -----------------------------------------------------------------------


class TestDispatch:
    def test_success_starts_streaming(self):
        session = Session(commandId="abc")
        prompt, effects = transition(
            PromptState(state=State.AWAITING_DISPATCH), DispatchSucceeded(session)
        )
        assert prompt.state is State.STREAMING
        assert prompt.commandRunning
        assert effects == [OpenSession(session)]

    def test_failure_interactive_returns_to_prompt(self):
        err = RuntimeError("nope")
        prompt, effects = transition(PromptState(state=State.AWAITING_DISPATCH), DispatchFailed(err))
        assert prompt.state is State.IDLE
        assert not prompt.commandRunning
        assert effects == [ReportDispatchError(err), ResumeInput(), Prompt()]

    def test_failure_one_shot_exits_nonzero(self):
        err = RuntimeError("nope")
        prompt, effects = transition(
            PromptState(state=State.AWAITING_DISPATCH, interactive=False), DispatchFailed(err)
        )
        assert prompt.state is State.CLOSED
        assert effects == [ReportDispatchError(err), Exit(1)]

    def test_late_dispatch_result_ignored(self):
        before = PromptState(state=State.CLOSED)
        assert transition(before, DispatchSucceeded(Session(commandId="x"))) == (before, [])


# -----------------------------------------------------------------------
# TestOutputLifecycle
# -----------------------------------------------------------------------


class TestOutputLifecycle:
    def test_end_returns_to_idle_and_resets_interrupts(self):
        prompt, effects = transition(streaming(countSIGINT=1), OutputEnded())
        assert prompt.state is State.IDLE
        assert not prompt.commandRunning
        assert prompt.countSIGINT == 0
        assert effects == [FinishCommand(), ResumeInput(), Prompt()]

    def test_end_one_shot_exits_zero(self):
        prompt, effects = transition(streaming(interactive=False), OutputEnded())
        assert prompt.state is State.CLOSED
        assert effects == [FinishCommand(), Exit(0)]

    def test_end_outside_streaming_ignored(self):
        assert transition(PromptState(), OutputEnded()) == (PromptState(), [])

    def test_stream_error_clears_running_but_keeps_state(self):
        err = RuntimeError("broken pipe")
        prompt, effects = transition(streaming(), OutputFailed(err))
        assert prompt.state is State.STREAMING
        assert not prompt.commandRunning
        assert effects == [Say("broken pipe", "error")]

    def test_stream_error_in_one_shot_exits_one_on_end(self):
        prompt, _ = transition(streaming(interactive=False), OutputFailed(RuntimeError("x")))
        prompt, effects = transition(prompt, OutputEnded())
        assert prompt.state is State.CLOSED
        assert effects == [FinishCommand(), Exit(1)]

    def test_stream_error_forgotten_after_interactive_end(self):
        prompt, _ = transition(streaming(), OutputFailed(RuntimeError("x")))
        prompt, _ = transition(prompt, OutputEnded())
        assert not prompt.streamFailed


# -----------------------------------------------------------------------
# TestTransportEvents
# -----------------------------------------------------------------------


class TestTransportEvents:
    def test_cancel_from_server_exits_one(self):
        prompt, effects = transition(streaming(), TransportCancelled("maintenance"))
        assert prompt.state is State.CLOSED
        assert effects == [
            Say("Cancel received from server: maintenance"),
            FinishCommand(),
            Exit(1),
        ]

    def test_unauthorized_interactive_returns_to_prompt(self):
        prompt, effects = transition(streaming(), TransportUnauthorized("expired"))
        assert prompt.state is State.IDLE
        assert effects[0] == Say("There was an error with the authentication: expired", "error")
        assert effects[1:] == [FinishCommand(), ResumeInput(), Prompt()]

    def test_unauthorized_one_shot_exits_one(self):
        prompt, effects = transition(streaming(interactive=False), TransportUnauthorized("expired"))
        assert prompt.state is State.CLOSED
        assert effects[-1] == Exit(1)

    def test_session_lost_while_idle_only_reports(self):
        prompt, effects = transition(PromptState(), SessionLost("gone"))
        assert prompt == PromptState()
        assert effects == [Say("gone", "error")]

    def test_rate_limit_gets_advisory_only(self):
        prompt, effects = transition(streaming(), TransportFailed("Rate limit exceeded"))
        assert prompt == streaming()
        assert effects == [Say("Rate limit exceeded: Please wait a moment and try again.", "error")]

    def test_other_failure_reported_and_shown(self):
        prompt, effects = transition(streaming(), TransportFailed("HTTP 502"))
        assert prompt == streaming()
        assert effects == [ReportError("HTTP 502"), Say("HTTP 502", "error")]

    def test_reconnect_attempt_binds_placeholder(self):
        prompt, effects = transition(streaming(), ReconnectAttempt())
        assert prompt == streaming()
        assert effects == [BindPlaceholder(), Say(RECONNECTING, "warning")]

    def test_reconnected_reopens(self):
        assert transition(streaming(), Reconnected()) == (streaming(), [Reopen()])

    @pytest.mark.parametrize("event", [ReconnectAttempt(), Reconnected()])
    def test_reconnect_events_ignored_when_idle(self, event):
        assert transition(PromptState(), event) == (PromptState(), [])


# -----------------------------------------------------------------------
# TestInterrupts
# -----------------------------------------------------------------------


class TestInterrupts:
    def test_first_interrupt_cancels_running_command(self):
        prompt, effects = transition(streaming(), Interrupted())
        assert prompt.state is State.STREAMING
        assert prompt.countSIGINT == 1
        assert effects == [SendCancelByte(), EndOutput(), Say("Command cancelled by user")]

    def test_second_interrupt_forces_exit(self):
        prompt, effects = transition(streaming(countSIGINT=1), Interrupted())
        assert prompt.state is State.CLOSED
        assert effects == [Exit(0, force=True)]

    def test_interrupt_with_nothing_running_exits(self):
        prompt, effects = transition(PromptState(), Interrupted())
        assert prompt.state is State.CLOSED
        assert effects[-1] == Exit(0)

    def test_count_resets_after_completion(self):
        prompt, _ = transition(streaming(), Interrupted())
        prompt, _ = transition(prompt, OutputEnded())
        assert prompt.countSIGINT == 0

        # next command: a single interrupt cancels again instead of exiting
        prompt = dataclasses.replace(prompt, state=State.STREAMING, commandRunning=True)
        prompt, effects = transition(prompt, Interrupted())
        assert prompt.state is State.STREAMING
        assert SendCancelByte() in effects


def test_unknown_event_raises():
    with pytest.raises(TypeError):
        transition(PromptState(), object())
