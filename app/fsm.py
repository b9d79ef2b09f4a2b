from __future__ import annotations

from statemachine import State, StateMachine

from app.api.models import SessionPhase, SessionState


class SessionFSM(StateMachine):
    """FSM wrapper around SessionState.

    Only guards phase transitions; the session applies the side effects.
    - not_started -> playing -> ended, and `begin` re-enters playing from anywhere.
    - `finish` is allowed from every phase so that ending twice is a no-op rather than an error.
    """

    not_started = State(
        SessionPhase.not_started.value,
        value=SessionPhase.not_started.value,
        initial=True,
    )
    playing = State(SessionPhase.playing.value, value=SessionPhase.playing.value)
    ended = State(SessionPhase.ended.value, value=SessionPhase.ended.value)

    begin = not_started.to(playing) | playing.to(playing) | ended.to(playing)
    finish = not_started.to(ended) | playing.to(ended) | ended.to(ended)

    def __init__(self, session: SessionState):
        self.session = session
        super().__init__(start_value=session.phase.value)

    def sync_phase_to_model(self) -> None:
        self.session.phase = SessionPhase(str(self.current_state_value))
