"""SOCSO and EIS contribution tables and the EPF employer rate rule.

Tables are module-level tuples built once at import time and shared by the
whole process. Each row is ``(upper_wage_bound, employee, employer)``; a wage
resolves to the first row whose bound is >= the wage. Wages above the last
bounded row resolve to the ceiling row.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class TableContribution:
    """Employee/employer contribution pair from a table row."""

    employee: Decimal
    employer: Decimal


@dataclass(frozen=True)
class ContributionRow:
    """One band of a contribution table."""

    upper_bound: Decimal
    employee: Decimal
    employer: Decimal

    @property
    def contribution(self) -> TableContribution:
        return TableContribution(employee=self.employee, employer=self.employer)


@dataclass(frozen=True)
class ContributionTable:
    """Ordered bands plus the ceiling row for wages above the last bound."""

    name: str
    rows: tuple[ContributionRow, ...]
    ceiling: TableContribution

    def __post_init__(self) -> None:
        bounds = [row.upper_bound for row in self.rows]
        if bounds != sorted(bounds) or len(set(bounds)) != len(bounds):
            raise ValueError(f"{self.name} table bounds must be strictly increasing")
        object.__setattr__(self, "_bounds", tuple(bounds))

    @property
    def max_bound(self) -> Decimal:
        return self.rows[-1].upper_bound

    def lookup(self, wage: Decimal) -> TableContribution:
        """Return the contribution for ``wage`` (smallest bound >= wage)."""
        if wage < 0:
            raise ValueError(f"{self.name} wage must not be negative: {wage}")
        index = bisect_left(self._bounds, wage)  # type: ignore[attr-defined]
        if index >= len(self.rows):
            return self.ceiling
        return self.rows[index].contribution


def _table(name: str, raw: list[tuple[str, str, str]], ceiling: tuple[str, str]) -> ContributionTable:
    return ContributionTable(
        name=name,
        rows=tuple(
            ContributionRow(Decimal(bound), Decimal(ee), Decimal(er)) for bound, ee, er in raw
        ),
        ceiling=TableContribution(Decimal(ceiling[0]), Decimal(ceiling[1])),
    )


# 2024 PERKESO first-category rates.
SOCSO_TABLE = _table(
    "SOCSO",
    [
        ("30", "0.10", "0.40"),
        ("50", "0.20", "0.70"),
        ("70", "0.30", "1.00"),
        ("100", "0.40", "1.30"),
        ("140", "0.60", "1.90"),
        ("200", "0.85", "2.65"),
        ("300", "1.25", "3.85"),
        ("400", "1.75", "5.35"),
        ("500", "2.25", "6.85"),
        ("600", "2.75", "8.35"),
        ("700", "3.25", "9.85"),
        ("800", "3.75", "11.35"),
        ("900", "4.25", "12.85"),
        ("1000", "4.75", "14.35"),
        ("1100", "5.25", "15.85"),
        ("1200", "5.75", "17.35"),
        ("1300", "6.25", "18.85"),
        ("1400", "6.75", "20.35"),
        ("1500", "7.25", "21.85"),
        ("1600", "7.75", "23.35"),
        ("1700", "8.25", "24.85"),
        ("1800", "8.75", "26.35"),
        ("1900", "9.25", "27.85"),
        ("2000", "9.75", "29.35"),
        ("2100", "10.25", "30.85"),
        ("2200", "10.75", "32.35"),
        ("2300", "11.25", "33.85"),
        ("2400", "11.75", "35.35"),
        ("2500", "12.25", "36.85"),
        ("2600", "12.75", "38.35"),
        ("2700", "13.25", "39.85"),
        ("2800", "13.75", "41.35"),
        ("2900", "14.25", "42.85"),
        ("3000", "14.75", "44.35"),
        ("3100", "15.25", "45.85"),
        ("3200", "15.75", "47.35"),
        ("3300", "16.25", "48.85"),
        ("3400", "16.75", "50.35"),
        ("3500", "17.25", "51.85"),
        ("3600", "17.75", "53.35"),
        ("3700", "18.25", "54.85"),
        ("3800", "18.75", "56.35"),
        ("3900", "19.25", "57.85"),
        ("4000", "19.75", "59.35"),
        ("4100", "20.25", "60.85"),
        ("4200", "20.75", "62.35"),
        ("4300", "21.25", "63.85"),
        ("4400", "21.75", "65.35"),
        ("4500", "22.25", "66.85"),
        ("4600", "22.75", "68.35"),
        ("4700", "23.25", "69.85"),
        ("4800", "23.75", "71.35"),
        ("4900", "24.25", "72.85"),
        ("5000", "24.75", "74.35"),
        ("5100", "25.25", "75.85"),
        ("5200", "25.75", "77.35"),
        ("5300", "26.25", "78.85"),
        ("5400", "26.75", "80.35"),
        ("5500", "27.25", "81.85"),
        ("5600", "27.75", "83.35"),
        ("5700", "28.25", "84.85"),
        ("5800", "28.75", "86.35"),
        ("5900", "29.25", "87.85"),
        ("6000", "29.75", "89.35"),
    ],
    ceiling=("29.75", "104.15"),
)

# 2024 PERKESO Employment Insurance System rates.
EIS_TABLE = _table(
    "EIS",
    [
        ("30", "0.05", "0.05"),
        ("50", "0.10", "0.10"),
        ("70", "0.15", "0.15"),
        ("100", "0.20", "0.20"),
        ("140", "0.25", "0.25"),
        ("200", "0.35", "0.35"),
        ("300", "0.50", "0.50"),
        ("400", "0.70", "0.70"),
        ("500", "0.90", "0.90"),
        ("600", "1.10", "1.10"),
        ("700", "1.30", "1.30"),
        ("800", "1.50", "1.50"),
        ("900", "1.70", "1.70"),
        ("1000", "1.90", "1.90"),
        ("1100", "2.10", "2.10"),
        ("1200", "2.30", "2.30"),
        ("1300", "2.50", "2.50"),
        ("1400", "2.70", "2.70"),
        ("1500", "2.90", "2.90"),
        ("1600", "3.10", "3.10"),
        ("1700", "3.30", "3.30"),
        ("1800", "3.50", "3.50"),
        ("1900", "3.70", "3.70"),
        ("2000", "3.90", "3.90"),
        ("2100", "4.10", "4.10"),
        ("2200", "4.30", "4.30"),
        ("2300", "4.50", "4.50"),
        ("2400", "4.70", "4.70"),
        ("2500", "4.90", "4.90"),
        ("2600", "5.10", "5.10"),
        ("2700", "5.30", "5.30"),
        ("2800", "5.50", "5.50"),
        ("2900", "5.70", "5.70"),
        ("3000", "5.90", "5.90"),
        ("3100", "6.10", "6.10"),
        ("3200", "6.30", "6.30"),
        ("3300", "6.50", "6.50"),
        ("3400", "6.70", "6.70"),
        ("3500", "6.90", "6.90"),
        ("3600", "7.10", "7.10"),
        ("3700", "7.30", "7.30"),
        ("3800", "7.50", "7.50"),
        ("3900", "7.70", "7.70"),
        ("4000", "7.90", "7.90"),
        ("4100", "8.10", "8.10"),
        ("4200", "8.30", "8.30"),
        ("4300", "8.50", "8.50"),
        ("4400", "8.70", "8.70"),
        ("4500", "8.90", "8.90"),
        ("4600", "9.10", "9.10"),
        ("4700", "9.30", "9.30"),
        ("4800", "9.50", "9.50"),
        ("4900", "9.70", "9.70"),
        ("5000", "9.90", "9.90"),
    ],
    ceiling=("11.90", "11.90"),
)

DEFAULT_EMPLOYEE_EPF_RATE = Decimal("0.11")
EPF_EMPLOYER_RATE_LOW = Decimal("0.13")
EPF_EMPLOYER_RATE_HIGH = Decimal("0.12")
EPF_EMPLOYER_TIER_THRESHOLD = Decimal("5000")
EPF_WAGE_BAND = Decimal("100")


def lookup_socso(wage: Decimal) -> TableContribution:
    """SOCSO contribution for a monthly wage."""
    return SOCSO_TABLE.lookup(wage)


def lookup_eis(wage: Decimal) -> TableContribution:
    """EIS contribution for a monthly wage."""
    return EIS_TABLE.lookup(wage)


def employer_epf_rate(rounded_base: Decimal, override: Decimal | None = None) -> Decimal:
    """Employer EPF rate: 13% up to RM5,000 rounded base, 12% above."""
    if override is not None:
        return override
    if rounded_base <= EPF_EMPLOYER_TIER_THRESHOLD:
        return EPF_EMPLOYER_RATE_LOW
    return EPF_EMPLOYER_RATE_HIGH
