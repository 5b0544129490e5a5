from __future__ import annotations

from pathlib import Path
from datetime import date

import pandas as pd
import pytest

from rates_core.curves import FlatForward, ZeroCurve


@pytest.fixture(scope="session")
def repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture(scope="session")
def asof_date() -> date:
    return date(2025, 11, 26)


@pytest.fixture
def flat_curve() -> FlatForward:
    """5% continuously compounded."""
    return FlatForward(0.05)


@pytest.fixture
def annual_curve() -> FlatForward:
    """5% annually compounded."""
    return FlatForward(0.05, compounding="annual")


@pytest.fixture
def sloped_curve() -> ZeroCurve:
    return ZeroCurve.from_pairs(
        [(0.5, 0.031), (1.0, 0.032), (2.0, 0.0335), (5.0, 0.036), (10.0, 0.039), (30.0, 0.042)],
        interpolation="pchip",
    )


@pytest.fixture
def history_df(asof_date: date) -> pd.DataFrame:
    """Long-form curve history: two dates, two curves."""
    rows = []
    for d, shift in ((date(2025, 11, 25), 0.0), (asof_date, 0.001)):
        for tenor, rate in ((1.0, 0.030), (2.0, 0.031), (5.0, 0.034), (10.0, 0.037)):
            rows.append({"date": d, "curve_key": "SWAP_SPOT", "tenor_yrs": tenor, "rate_dec": rate + shift})
            rows.append({"date": d, "curve_key": "UST_SPOT", "tenor_yrs": tenor, "rate_dec": rate + 0.01})
    return pd.DataFrame(rows)
