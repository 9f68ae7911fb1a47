"""In-process view of each loan's progress through the oracle pipeline."""

from collections import Counter
import logging
from threading import RLock
from typing import Dict, FrozenSet

from models.enums import LoanProcessingState
from models.exceptions import InvalidStateTransitionError


logger = logging.getLogger(__name__)

S = LoanProcessingState

ALLOWED_TRANSITIONS: Dict[LoanProcessingState, FrozenSet[LoanProcessingState]] = {
    S.UNSEEN: frozenset({S.OBSERVED}),
    S.OBSERVED: frozenset({S.DECIDING, S.CONFIRMED}),
    S.DECIDING: frozenset({S.SUBMITTED, S.CONFIRMED, S.FAILED_RETRYABLE, S.FAILED_TERMINAL}),
    S.SUBMITTED: frozenset({S.CONFIRMED, S.FAILED_RETRYABLE, S.FAILED_TERMINAL}),
    S.FAILED_RETRYABLE: frozenset({S.SUBMITTED, S.CONFIRMED, S.FAILED_TERMINAL}),
    S.FAILED_TERMINAL: frozenset(),
    S.CONFIRMED: frozenset(),
}


class LoanStateTracker:
    """Validate and record per-loan state transitions.

    `UNSEEN -> OBSERVED -> DECIDING -> SUBMITTED -> CONFIRMED`, with
    `FAILED_RETRYABLE` looping back to `SUBMITTED` and `FAILED_TERMINAL`
    ending processing. `CONFIRMED` and `FAILED_TERMINAL` are final.
    """

    def __init__(self) -> None:
        self._states: Dict[int, LoanProcessingState] = {}
        self._lock = RLock()

    def state_of(self, loan_id: int) -> LoanProcessingState:
        with self._lock:
            return self._states.get(int(loan_id), S.UNSEEN)

    def is_final(self, loan_id: int) -> bool:
        return self.state_of(loan_id) in {S.CONFIRMED, S.FAILED_TERMINAL}

    def transition(self, loan_id: int, target: LoanProcessingState) -> LoanProcessingState:
        """Move a loan to `target`.

        Raises:
            InvalidStateTransitionError: If the move is not allowed.
        """
        with self._lock:
            current = self._states.get(int(loan_id), S.UNSEEN)
            if target not in ALLOWED_TRANSITIONS[current]:
                raise InvalidStateTransitionError(
                    "loan_id={0} cannot move {1} -> {2}".format(loan_id, current.value, target.value)
                )
            self._states[int(loan_id)] = target
            logger.debug("Loan state loan_id=%s %s -> %s", loan_id, current.value, target.value)
            return current

    def observe(self, loan_id: int) -> bool:
        """Record an observation; return False if the loan needs no further work.

        A loan left in `OBSERVED` or `DECIDING` by an aborted tick is observed
        again. Callers must skip loans already queued for submission.
        """
        with self._lock:
            current = self.state_of(loan_id)
            if current in {S.UNSEEN, S.OBSERVED, S.DECIDING}:
                self._states[int(loan_id)] = S.OBSERVED
                return True
            return False

    def counts(self) -> Dict[str, int]:
        """Return `{state: number_of_loans}` for status reporting."""
        with self._lock:
            return dict(Counter(state.value for state in self._states.values()))
