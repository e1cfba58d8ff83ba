"""
Reference / Monitoring Subsamples
=================================
Interface to the data-provisioning side: a cleaned, labelled observation
matrix and a reproducible draw of a reference sample plus a disjoint
monitoring stream from it.

The matrix is validated, never modified. Missing-value filtering and
constant-column removal happen upstream.

Usage:
    data = LabelledObservations.from_dataframe(df, label_col='pass_fail',
                                               in_control_value=-1)
    reference, stream = draw_subsamples(data, n_reference=100, n_monitor=50, seed=1)
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd

from .qc_checks import QCReport, assert_qc_passed, run_qc_checks


MONITOR_SOURCES = ('all', 'in_control', 'out_of_control')


@dataclass(frozen=True, eq=False)
class LabelledObservations:
    """
    Finite numeric observation matrix with a parallel in-control flag.

    Attributes:
        values: (n, p) read-only observation matrix
        in_control: (n,) read-only boolean labels
        feature_names: Column names, if known
    """
    values: np.ndarray
    in_control: np.ndarray
    feature_names: Optional[List[str]] = None

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        labels = np.array(self.in_control, dtype=bool)
        values.flags.writeable = False
        labels.flags.writeable = False
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'in_control', labels)

        assert_qc_passed(self.qc_report())

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        label_col: str,
        in_control_value: Any = 1,
        feature_cols: Optional[List[str]] = None,
    ) -> 'LabelledObservations':
        """
        Build from a DataFrame holding features and a label column.

        Args:
            df: Cleaned data
            label_col: Column with the in-control / out-of-control label
            in_control_value: Label value that marks an in-control row
            feature_cols: Feature columns (default: every other numeric column)
        """
        if label_col not in df.columns:
            raise ValueError(f"Label column '{label_col}' not found in data")

        if feature_cols is None:
            feature_cols = [
                c for c in df.select_dtypes(include=[np.number]).columns
                if c != label_col
            ]

        missing = [c for c in feature_cols if c not in df.columns]
        if missing:
            raise ValueError(f"Feature columns not found in data: {missing}")

        return cls(
            values=df[feature_cols].to_numpy(dtype=float),
            in_control=(df[label_col] == in_control_value).to_numpy(),
            feature_names=[str(c) for c in feature_cols],
        )

    @property
    def n_observations(self) -> int:
        return self.values.shape[0]

    @property
    def n_features(self) -> int:
        return self.values.shape[1]

    def qc_report(self) -> QCReport:
        return run_qc_checks(self.values, labels=self.in_control)


def draw_subsamples(
    data: LabelledObservations,
    n_reference: int,
    n_monitor: int,
    seed: Optional[int] = None,
    monitor_from: str = 'all',
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Draw a reference sample and a disjoint monitoring stream.

    Both draws are without replacement. The reference sample comes from
    in-control rows only; the stream from rows selected by
    ``monitor_from`` that were not used for the reference.

    Args:
        data: Labelled observations
        n_reference: Reference sample size m
        n_monitor: Stream length
        seed: Seed for numpy's default_rng (same seed, same draw)
        monitor_from: 'all', 'in_control' or 'out_of_control'

    Returns:
        Tuple of (reference (m, p), stream (n_monitor, p)) as new arrays

    Raises:
        ValueError: If there are not enough rows to draw from
    """
    if monitor_from not in MONITOR_SOURCES:
        raise ValueError(f"monitor_from must be one of {MONITOR_SOURCES}, got '{monitor_from}'")

    if n_reference < 1 or n_monitor < 0:
        raise ValueError(
            f"Need n_reference >= 1 and n_monitor >= 0, got {n_reference} and {n_monitor}"
        )

    rng = np.random.default_rng(seed)

    in_control_rows = np.flatnonzero(data.in_control)
    if len(in_control_rows) < n_reference:
        raise ValueError(
            f"Requested {n_reference} reference observations, "
            f"only {len(in_control_rows)} in-control rows available"
        )

    reference_rows = rng.choice(in_control_rows, size=n_reference, replace=False)

    if monitor_from == 'in_control':
        pool = data.in_control.copy()
    elif monitor_from == 'out_of_control':
        pool = ~data.in_control
    else:
        pool = np.ones(data.n_observations, dtype=bool)
    pool[reference_rows] = False

    candidates = np.flatnonzero(pool)
    if len(candidates) < n_monitor:
        raise ValueError(
            f"Requested {n_monitor} monitoring observations, "
            f"only {len(candidates)} '{monitor_from}' rows remain after the reference draw"
        )

    monitor_rows = rng.choice(candidates, size=n_monitor, replace=False)

    return data.values[reference_rows].copy(), data.values[monitor_rows].copy()
