"""
Selection attempt limiter - caps manual destination overrides per planning flow

States: Open(n) while n < max_attempts, then Locked until reset().
"""
from stepmatch.exceptions import InvalidInputError, SelectionError
from stepmatch.models.selection import AttemptState, ResetMode


class SelectionAttemptLimiter:
    """One instance per planning session; never share it across sessions."""

    def __init__(
        self,
        max_attempts: int,
        reset_mode: ResetMode,
        count_invalid_attempts: bool = False,
    ):
        if max_attempts < 1:
            raise InvalidInputError(f"max_attempts must be at least 1, got {max_attempts}")

        self.max_attempts = max_attempts
        self.reset_mode = ResetMode(reset_mode)
        # Legacy screens counted every click; off unless parity is required
        self.count_invalid_attempts = count_invalid_attempts
        self._count = 0
        self._locked = False

    @property
    def state(self) -> AttemptState:
        return AttemptState(
            valid_attempt_count=self._count,
            max_attempts=self.max_attempts,
            locked=self._locked,
        )

    @property
    def locked(self) -> bool:
        return self._locked

    def can_attempt(self) -> bool:
        return not self._locked

    def register_valid(self) -> AttemptState:
        """A proposed destination passed validation and was committed"""
        self._consume()
        return self.state

    def register_invalid(self) -> AttemptState:
        """A proposed destination was rejected; free unless configured otherwise"""
        if self.count_invalid_attempts and not self._locked:
            self._consume()
        return self.state

    def reset(self) -> AttemptState:
        """Count back to zero; the lock follows the configured reset mode"""
        self._count = 0
        self._locked = self.reset_mode == ResetMode.LOCK_AND_START_DEFAULT
        return self.state

    def restart(self) -> AttemptState:
        """Fresh planning flow: Open(0) whatever the reset mode"""
        self._count = 0
        self._locked = False
        return self.state

    def _consume(self) -> None:
        if self._locked:
            raise SelectionError("Manual selection is locked until reset")
        self._count += 1
        if self._count >= self.max_attempts:
            self._locked = True
