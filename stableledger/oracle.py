"""
oracle.py - Price feed collaborators

Provides the price feeds the engine reads from.

Classes:
- RoundData: One aggregator round (answer plus timing metadata)
- MockPriceFeed: In-memory aggregator with a full round history
- StaleCheckedFeed: Adapter that rejects stale rounds

Functions:
- stale_check_latest_round_data: The staleness check used by the adapter

Answers are signed ints with FEED_DECIMALS decimals (a $2000 price is
2000 * 10**8). Time is supplied by a clock callable returning datetime so
that feeds follow the logical clock of the ledger they are used with.
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .core import (
    FEED_DECIMALS, ORACLE_TIMEOUT,
    PriceFeed, StalePrice,
)


Clock = Callable[[], datetime]


@dataclass(frozen=True, slots=True)
class RoundData:
    """
    Immutable record of one aggregator round.

    Attributes:
        round_id: Monotonic round identifier
        answer: Price with the feed's decimals (signed)
        started_at: When the round started
        updated_at: When the answer was written (None if never)
        answered_in_round: Round in which the answer was computed
    """
    round_id: int
    answer: int
    started_at: Optional[datetime]
    updated_at: Optional[datetime]
    answered_in_round: int


class MockPriceFeed:
    """
    Aggregator feed with manually pushed answers.

    Every update opens a new round. Past rounds stay queryable through
    get_round_data().

    Example:
        feed = MockPriceFeed(8, 2000 * 10**8, clock=lambda: ledger.current_time)
        feed.update_answer(1800 * 10**8)
        feed.latest_round_data().answer   # 180000000000
    """

    def __init__(self, decimals: int, initial_answer: int, clock: Clock):
        """
        Initialize the feed with a first round.

        Args:
            decimals: Decimal places of answers
            initial_answer: First answer
            clock: Source of the current time for round timestamps
        """
        self._decimals = decimals
        self._clock = clock
        self._rounds: Dict[int, RoundData] = {}
        self._latest_round = 0
        self.update_answer(initial_answer)

    @property
    def decimals(self) -> int:
        return self._decimals

    @property
    def latest_round(self) -> int:
        return self._latest_round

    @property
    def latest_answer(self) -> int:
        return self._rounds[self._latest_round].answer

    def update_answer(self, answer: int) -> RoundData:
        """Open a new round with the given answer, stamped with the current clock."""
        now = self._clock()
        self._latest_round += 1
        data = RoundData(
            round_id=self._latest_round,
            answer=int(answer),
            started_at=now,
            updated_at=now,
            answered_in_round=self._latest_round,
        )
        self._rounds[data.round_id] = data
        return data

    def update_round_data(
        self,
        round_id: int,
        answer: int,
        updated_at: Optional[datetime],
        started_at: Optional[datetime],
        answered_in_round: Optional[int] = None,
    ) -> RoundData:
        """
        Write an arbitrary round and make it the latest.

        Used to simulate incomplete or delayed rounds.
        """
        data = RoundData(
            round_id=round_id,
            answer=int(answer),
            started_at=started_at,
            updated_at=updated_at,
            answered_in_round=round_id if answered_in_round is None else answered_in_round,
        )
        self._rounds[round_id] = data
        self._latest_round = round_id
        return data

    def get_round_data(self, round_id: int) -> RoundData:
        if round_id not in self._rounds:
            raise KeyError(f"No data for round {round_id}")
        return self._rounds[round_id]

    def latest_round_data(self) -> RoundData:
        return self._rounds[self._latest_round]

    def answer_at(self, timestamp: datetime) -> Optional[int]:
        """
        Answer in force at a timestamp (most recent update at or before it).

        Returns None if no round had been written by then.
        """
        history: List[RoundData] = sorted(
            (r for r in self._rounds.values() if r.updated_at is not None),
            key=lambda r: r.updated_at,
        )
        timestamps = [r.updated_at for r in history]
        idx = bisect_right(timestamps, timestamp)
        if idx == 0:
            return None
        return history[idx - 1].answer

    def __repr__(self):
        return f"MockPriceFeed(round={self._latest_round}, answer={self.latest_answer}, decimals={self._decimals})"


def stale_check_latest_round_data(
    feed: PriceFeed,
    now: datetime,
    timeout: timedelta = ORACLE_TIMEOUT,
) -> RoundData:
    """
    Read the latest round and reject it if it is stale.

    A round is stale when it was never updated, when its answer was carried
    over from an earlier round, or when it is older than timeout.

    Args:
        feed: Feed to read
        now: Current time
        timeout: Maximum accepted age of the answer

    Returns:
        The latest round

    Raises:
        StalePrice: If the round is stale
    """
    data = feed.latest_round_data()
    if data.updated_at is None or data.answered_in_round < data.round_id:
        raise StalePrice(f"round {data.round_id} is incomplete")
    age = now - data.updated_at
    if age > timeout:
        raise StalePrice(f"round {data.round_id} is {age} old (timeout {timeout})")
    return data


class StaleCheckedFeed:
    """
    Price feed adapter that enforces the staleness bound on every read.

    The engine never checks staleness itself; it is handed these adapters at
    construction. While the underlying feed is stale, every operation that
    needs a valuation fails.
    """

    def __init__(self, feed: PriceFeed, clock: Clock, timeout: timedelta = ORACLE_TIMEOUT):
        self.feed = feed
        self._clock = clock
        self.timeout = timeout

    @property
    def decimals(self) -> int:
        return self.feed.decimals

    def latest_round_data(self) -> RoundData:
        return stale_check_latest_round_data(self.feed, self._clock(), self.timeout)

    def __repr__(self):
        return f"StaleCheckedFeed({self.feed!r}, timeout={self.timeout})"


def usd_answer(dollars, decimals: int = FEED_DECIMALS) -> int:
    """Convert a whole-dollar (or Decimal) price to a feed answer."""
    return int(dollars * 10 ** decimals)
