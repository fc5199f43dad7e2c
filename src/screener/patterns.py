"""Three-candle breakout detection.

For each position ``i`` the scanner pairs the earlier candle ``i - 1`` (the
touch candle) with the later candle ``i`` (the one-sided candle):

1. the touch candle's range contains its indicator value, or its body
   crosses it;
2. every OHLC value of the one-sided candle lies strictly above (or below)
   its indicator value;
3. some later candle ``j > i`` closes (or trades) above the touch candle's
   high.

The first position satisfying all three yields the only hit of the scan.
"""

from __future__ import annotations

import logging
from typing import Sequence

from screener.types import AnnotatedCandle, BreakoutMode, CandleSide, PatternHit

logger = logging.getLogger(__name__)


def touches_indicator(candle: AnnotatedCandle, level: float | None) -> bool:
    """Whether the candle's range contains ``level`` or its body crosses it."""
    if level is None:
        return False
    if candle.low <= level <= candle.high:
        return True
    cross_down = candle.open > level and candle.close < level
    cross_up = candle.open < level and candle.close > level
    return cross_down or cross_up


def is_one_sided(candle: AnnotatedCandle, level: float, side: CandleSide) -> bool:
    """Whether all four OHLC values lie strictly on ``side`` of ``level``."""
    prices = (candle.open, candle.high, candle.low, candle.close)
    if side is CandleSide.ABOVE:
        return all(p > level for p in prices)
    return all(p < level for p in prices)


def breaks_above(candle: AnnotatedCandle, level: float, mode: BreakoutMode) -> bool:
    """Whether the candle's close (or high) exceeds ``level``."""
    price = candle.high if mode is BreakoutMode.HIGH else candle.close
    return price > level


class PatternScanner:
    """Finds the first three-candle breakout in an annotated series."""

    def scan(
        self,
        annotated: Sequence[AnnotatedCandle],
        side: CandleSide | str = CandleSide.BELOW,
        breakout_mode: BreakoutMode | str = BreakoutMode.CLOSE,
    ) -> PatternHit | None:
        """Scan ``annotated`` and return the first hit, if any.

        :param annotated: Indicator-annotated candles in time order.
        :param side: Required side of the one-sided candle.
        :param breakout_mode: Price field used for the breakout test.
        :returns: The first PatternHit found, or None.
        """
        side = CandleSide(side)
        breakout_mode = BreakoutMode(breakout_mode)
        n = len(annotated)

        for i in range(1, n - 1):
            touch = annotated[i - 1]
            one_sided = annotated[i]
            if touch.indicator is None or one_sided.indicator is None:
                continue

            if not touches_indicator(touch, touch.indicator):
                continue
            if not is_one_sided(one_sided, one_sided.indicator, side):
                continue

            reference_high = touch.high
            for j in range(i + 1, n):
                if breaks_above(annotated[j], reference_high, breakout_mode):
                    logger.debug("Pattern hit: touch=%d side=%d breakout=%d", i - 1, i, j)
                    return PatternHit(
                        touch_index=i - 1,
                        side_index=i,
                        breakout_index=j,
                        reference_high=reference_high,
                    )

        return None
