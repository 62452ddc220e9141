from .attempt_limiter import SelectionAttemptLimiter

__all__ = ["SelectionAttemptLimiter"]
