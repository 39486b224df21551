import random


class Backoff:
    """
    Exponential reconnect delay with symmetric jitter, capped at ``max_seconds``.
    """

    def __init__(self, base_seconds: float = 1.0, max_seconds: float = 30.0, factor: float = 2.0, jitter_frac: float = 0.2):
        self.base = max(float(base_seconds), 0.0)
        self.max = max(float(max_seconds), self.base)
        self.factor = max(float(factor), 1.0)
        self.jitter_frac = min(max(float(jitter_frac), 0.0), 1.0)

    def next_interval(self, attempt: int) -> float:
        raw = min(self.base * (self.factor ** max(int(attempt) - 1, 0)), self.max)
        delta = random.uniform(-self.jitter_frac, self.jitter_frac) * raw if self.jitter_frac else 0.0
        return max(0.0, min(self.max, raw + delta))
