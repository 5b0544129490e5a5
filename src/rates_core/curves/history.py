# src/rates_core/curves/history.py

from __future__ import annotations

from datetime import date as date_type
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from rates_core.errors import ConfigurationError
from .types import ZeroCurve


# ---------- Fixing history ----------


class FixingHistory:
    """
    Caller-owned store of past index fixings: key -> date-indexed series.

    There is no process-wide registry; whoever needs fixings builds a
    FixingHistory and passes it explicitly. The lattice code never reads
    from it.
    """

    def __init__(self) -> None:
        self._series: Dict[str, pd.Series] = {}

    @staticmethod
    def _norm_key(key: str) -> str:
        return str(key).strip().upper()

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        key_col: str = "index",
        date_col: str = "date",
        value_col: str = "value",
    ) -> "FixingHistory":
        """
        Build from a long-form table (one row per key/date), the same
        shape the curve history tables use.
        """
        for col in (key_col, date_col, value_col):
            if col not in df.columns:
                raise ConfigurationError(f"fixing table is missing column {col!r}")

        hist = cls()
        for key, sub in df.groupby(key_col):
            pairs = zip(pd.to_datetime(sub[date_col]).dt.date, sub[value_col].astype(float))
            hist.add_fixings(str(key), pairs)
        return hist

    def keys(self) -> List[str]:
        return sorted(self._series)

    def __contains__(self, key: str) -> bool:
        return self._norm_key(key) in self._series

    def add_fixing(self, key: str, fixing_date: date_type, value: float, *, overwrite: bool = False) -> None:
        self.add_fixings(key, [(fixing_date, value)], overwrite=overwrite)

    def add_fixings(
        self,
        key: str,
        pairs: Iterable[Tuple[date_type, float]],
        *,
        overwrite: bool = False,
    ) -> None:
        """
        Add (date, value) pairs for ``key``.

        A date already present with a different value raises unless
        ``overwrite`` is set; re-adding the same value is a no-op.
        """
        k = self._norm_key(key)
        new = pd.Series(
            {pd.Timestamp(d).date(): float(v) for d, v in pairs},
            dtype=float,
        )
        if new.empty:
            return

        current = self._series.get(k)
        if current is None:
            self._series[k] = new.sort_index()
            return

        common = current.index.intersection(new.index)
        if not overwrite and len(common) > 0:
            clash = common[(current.loc[common] != new.loc[common]).to_numpy()]
            if len(clash) > 0:
                raise ConfigurationError(
                    f"duplicated fixing for {k} on {clash[0]}: "
                    f"{current.loc[clash[0]]} vs {new.loc[clash[0]]}"
                )

        merged = new.combine_first(current) if overwrite else current.combine_first(new)
        self._series[k] = merged.sort_index()

    def series(self, key: str) -> pd.Series:
        """Copy of all fixings for key (empty series if none)."""
        k = self._norm_key(key)
        if k not in self._series:
            return pd.Series(dtype=float)
        return self._series[k].copy()

    def fixing(self, key: str, fixing_date: date_type) -> float:
        k = self._norm_key(key)
        s = self._series.get(k)
        d = pd.Timestamp(fixing_date).date()
        if s is None or d not in s.index:
            raise KeyError(f"missing {k} fixing for {d}")
        return float(s.loc[d])

    def last_fixing(self, key: str, on_or_before: Optional[date_type] = None) -> Tuple[date_type, float]:
        s = self.series(key)
        if on_or_before is not None:
            s = s[s.index <= pd.Timestamp(on_or_before).date()]
        if s.empty:
            raise KeyError(f"no {self._norm_key(key)} fixing available")
        return s.index[-1], float(s.iloc[-1])

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._series.clear()
        else:
            self._series.pop(self._norm_key(key), None)


# ---------- Curve history ----------


def zero_curve_from_history(
    history_df: pd.DataFrame,
    curve_key: str,
    target_date: date_type,
    interpolation: str = "pchip",
) -> ZeroCurve:
    """
    From a long-form curve history

        date, curve_key, tenor_yrs, rate_dec

    pick one (date, curve_key) and return it as a ZeroCurve
    (PCHIP-interpolated by default).
    """
    required = {"date", "curve_key", "tenor_yrs", "rate_dec"}
    missing = required - set(history_df.columns)
    if missing:
        raise ConfigurationError(f"history_df is missing columns: {sorted(missing)}")

    df = history_df.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.date

    mask = (df["date"] == target_date) & (df["curve_key"] == curve_key)
    sub = df.loc[mask].sort_values("tenor_yrs")

    if sub.empty:
        raise ConfigurationError(
            f"No curve rows found in history for date={target_date} and curve_key={curve_key}"
        )

    pairs = zip(sub["tenor_yrs"].astype(float), sub["rate_dec"].astype(float))
    return ZeroCurve.from_pairs(pairs, interpolation=interpolation)


__all__ = ["FixingHistory", "zero_curve_from_history"]
