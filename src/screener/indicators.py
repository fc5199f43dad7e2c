"""Trailing indicator computation over candle series.

Each supported :class:`~screener.types.IndicatorKind` has exactly one handler.
Handlers receive the close and volume columns as pandas Series and return a
Series of the same length, using NaN for indices without a value.
"""

from __future__ import annotations

import logging
from typing import Callable, Sequence

import numpy as np
import pandas as pd

from screener.types import AnnotatedCandle, Candle, IndicatorKind, clamp_window

logger = logging.getLogger(__name__)

Handler = Callable[[pd.Series, pd.Series, int], pd.Series]


def _vwap(closes: pd.Series, volumes: pd.Series, window: int) -> pd.Series:
    # Close stands in for the typical price.
    cum_pv = (closes * volumes).cumsum()
    cum_vol = volumes.cumsum()
    return cum_pv / cum_vol.where(cum_vol != 0)


def _sma(closes: pd.Series, volumes: pd.Series, window: int) -> pd.Series:
    # Exact window average: every window is summed from scratch, oldest first.
    return closes.rolling(window=window, min_periods=window).apply(
        lambda w: sum(w) / window, raw=True
    )


def _ema(closes: pd.Series, volumes: pd.Series, window: int) -> pd.Series:
    alpha = 2.0 / (window + 1)
    return closes.ewm(alpha=alpha, adjust=False).mean()


def _close(closes: pd.Series, volumes: pd.Series, window: int) -> pd.Series:
    return closes.copy()


class IndicatorEngine:
    """Computes one indicator value per candle.

    Example usage::

        engine = IndicatorEngine()
        annotated = engine.compute(candles, "EMA", 20)
    """

    HANDLERS: dict[IndicatorKind, Handler] = {
        IndicatorKind.VWAP: _vwap,
        IndicatorKind.SMA: _sma,
        IndicatorKind.EMA: _ema,
        IndicatorKind.CLOSE: _close,
    }

    def values(
        self,
        candles: Sequence[Candle],
        kind: IndicatorKind | str,
        window: int | None = None,
    ) -> list[float | None]:
        """Indicator values aligned with ``candles``.

        :param candles: Candles in time order.
        :param kind: Indicator kind (enum or case-insensitive name).
        :param window: Lookback window, clamped to [2, 200].
        :returns: One value per candle; None where undefined.
        :raises UnsupportedIndicatorError: If ``kind`` is not supported.
        """
        kind = IndicatorKind.parse(kind)
        window = clamp_window(window)
        if not candles:
            return []

        closes = pd.Series([c.close for c in candles], dtype="float64")
        volumes = pd.Series([c.volume for c in candles], dtype="float64")
        series = self.HANDLERS[kind](closes, volumes, window)

        raw = series.to_numpy(dtype="float64")
        return [None if np.isnan(v) else float(v) for v in raw]

    def compute(
        self,
        candles: Sequence[Candle],
        kind: IndicatorKind | str,
        window: int | None = None,
    ) -> list[AnnotatedCandle]:
        """Annotate ``candles`` with the requested indicator.

        :param candles: Candles in time order.
        :param kind: Indicator kind (enum or case-insensitive name).
        :param window: Lookback window, clamped to [2, 200].
        :returns: Annotated candles, same length and order as the input.
        :raises UnsupportedIndicatorError: If ``kind`` is not supported.
        """
        values = self.values(candles, kind, window)
        logger.debug("Computed %s over %d candles", kind, len(values))
        return [
            AnnotatedCandle(**candle.model_dump(exclude={"indicator"}), indicator=value)
            for candle, value in zip(candles, values)
        ]
