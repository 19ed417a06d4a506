from __future__ import annotations

from statemachine import State, StateMachine

from fiction_engine.api.models import Session, SessionPhase


class SessionFSM(StateMachine):
    """Lifecycle guard around a Session.

    - `begin`: a story (re)starts; allowed from a fresh or an in-progress session.
    - `finish`: an end_game intent fired; the session is then archived.
    The engine mutates the session; the FSM only guards the transitions.
    """

    created = State(SessionPhase.created.value, value=SessionPhase.created.value, initial=True)
    playing = State(SessionPhase.playing.value, value=SessionPhase.playing.value)
    finished = State(SessionPhase.finished.value, value=SessionPhase.finished.value, final=True)

    begin = created.to(playing) | playing.to.itself()
    finish = playing.to(finished)

    def __init__(self, session: Session):
        self.session = session
        super().__init__(start_value=session.phase.value)

    def sync_phase_to_model(self) -> None:
        self.session.phase = SessionPhase(str(self.current_state.value))
        self.session.finished = self.session.phase == SessionPhase.finished
