"""
Descriptive statistics shipped with feature group and training dataset updates.
"""
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from pandas.api import types as ptypes

DESCRIPTIVE_STATISTICS = "descriptiveStatistics"


def _metric(name: str, value: Any) -> Dict[str, Any]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        value = None
    elif isinstance(value, (np.integer, np.floating)):
        value = value.item()
    return {"metricName": name, "value": value}


class StatisticsComputer:
    """
    Compute per-feature descriptive statistics of a dataframe.

    Output follows the backend DTO layout: one entry per feature with
    `featureName`, `metricValues` and `statisticType`.
    """

    def __init__(self, decimals: int = 4):
        self.decimals = decimals

    def _round(self, value):
        return None if pd.isna(value) else round(float(value), self.decimals)

    def feature_statistics(self, series: pd.Series) -> List[Dict[str, Any]]:
        """Metric values for one column."""
        metrics = [
            _metric("count", int(series.count())),
            _metric("nullCount", int(series.isnull().sum())),
        ]
        if ptypes.is_numeric_dtype(series.dtype) and not ptypes.is_bool_dtype(series.dtype):
            all_null = series.isnull().all()
            metrics.extend([
                _metric("mean", None if all_null else self._round(series.mean())),
                _metric("stddev", None if all_null else self._round(series.std())),
                _metric("min", None if all_null else self._round(series.min())),
                _metric("max", None if all_null else self._round(series.max())),
            ])
        else:
            metrics.append(_metric("distinctCount", int(series.nunique())))
        return metrics

    def compute(self, df: pd.DataFrame, stat_columns: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """
        Compute descriptive statistics.

        Args:
            df: Source dataframe.
            stat_columns: Restrict statistics to these columns (all when empty).

        Returns:
            List of descriptive statistics DTOs.
        """
        columns = [c for c in (stat_columns or df.columns) if c in df.columns]
        return [
            {
                "featureName": str(column),
                "metricValues": self.feature_statistics(df[column]),
                "statisticType": DESCRIPTIVE_STATISTICS,
            }
            for column in columns
        ]
