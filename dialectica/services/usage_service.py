"""Token and cost estimates, and the process-wide usage accumulator."""

import math
import threading

from dialectica.models.analysis import UsageEstimate, UsageStats

CHARS_PER_TOKEN = 3.5
INPUT_PRICE_PER_MILLION = 0.35
OUTPUT_PRICE_PER_MILLION = 0.70


class UsageEstimator:
    """Character-count based token estimate priced per million tokens."""

    def __init__(
        self,
        chars_per_token: float = CHARS_PER_TOKEN,
        input_price_per_million: float = INPUT_PRICE_PER_MILLION,
        output_price_per_million: float = OUTPUT_PRICE_PER_MILLION,
    ):
        self.chars_per_token = chars_per_token
        self.input_price = input_price_per_million
        self.output_price = output_price_per_million

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text or "") / self.chars_per_token)

    def cost(self, input_tokens: int, output_tokens: int) -> float:
        return (
            input_tokens / 1_000_000 * self.input_price
            + output_tokens / 1_000_000 * self.output_price
        )

    def estimate(self, input_text: str, output_text: str) -> UsageEstimate:
        input_tokens = self.estimate_tokens(input_text)
        output_tokens = self.estimate_tokens(output_text)
        return UsageEstimate(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.cost(input_tokens, output_tokens),
        )


class UsageTracker:
    """Cumulative usage for the process.

    All three counters change together under one lock; ``snapshot()``
    never observes a half-applied update.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats = UsageStats()

    def add(self, estimate: UsageEstimate) -> UsageStats:
        with self._lock:
            self._stats = UsageStats(
                total_input_tokens=self._stats.total_input_tokens + estimate.input_tokens,
                total_output_tokens=self._stats.total_output_tokens + estimate.output_tokens,
                total_cost=self._stats.total_cost + estimate.cost,
            )
            return self._stats

    def snapshot(self) -> UsageStats:
        with self._lock:
            return self._stats

    def reset(self) -> None:
        with self._lock:
            self._stats = UsageStats()


# Process-wide accumulator; reset only on explicit request
usage_tracker = UsageTracker()
