"""線形回帰による時系列トレンド分析."""

import numpy as np
from sklearn.linear_model import LinearRegression

from timetrack.interfaces.report import TrendResult

RISING_THRESHOLD: float = 0.5
"""バケットあたりの増加時間（h）がこの値を超えたら増加傾向とみなす（仮値）."""


def compute_trend(
    n_values: np.ndarray,
    hours: np.ndarray,
    threshold: float = RISING_THRESHOLD,
) -> tuple[float, float, bool]:
    """線形回帰でトレンドを算出する.

    Args:
        n_values: 連番（バケット開始日の昇順から導出）
        hours: バケットごとの合計時間
        threshold: 増加傾向と判定する slope の閾値

    Returns:
        (slope, intercept, is_rising)
    """
    model = LinearRegression()
    model.fit(n_values.reshape(-1, 1), hours)
    slope = float(model.coef_[0])
    intercept = float(model.intercept_)
    is_rising = slope > threshold
    return slope, intercept, is_rising


def trend_for_totals(
    totals: list[float], threshold: float = RISING_THRESHOLD
) -> TrendResult | None:
    """バケット合計の列からトレンドを求める. 2点未満なら None."""
    if len(totals) < 2:
        return None
    n_values = np.arange(1, len(totals) + 1)
    slope, intercept, is_rising = compute_trend(
        n_values, np.array(totals, dtype=float), threshold
    )
    return TrendResult(slope=slope, intercept=intercept, is_rising=is_rising)
