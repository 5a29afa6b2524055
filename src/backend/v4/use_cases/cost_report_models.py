"""Cost report data model.

Rows arrive from a producer (file parser, synthetic generator, HTTP body) with
the cost already tagged as numeric or non-numeric. Issues and results are
created fresh per evaluation and never mutated afterwards.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

COLUMN_ACTUAL_COST = "actualCost"
COLUMN_WBS_ELEMENT = "wbsElementId"
COLUMN_KEY_COMBINATION = "Multiple (Key Combination)"

# ASCII only: no digit-group underscores, thousands separators or Unicode digits.
_NUMERIC_TEXT = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


class Severity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


@dataclass(frozen=True, slots=True)
class NumericCost:
    value: Decimal


@dataclass(frozen=True, slots=True)
class NonNumericCost:
    raw: str


Cost = Union[NumericCost, NonNumericCost]


def parse_cost(value: Any) -> Cost:
    """Tag a raw cost value as numeric or non-numeric.

    Strings are parsed strictly: no thousands separators, no currency
    symbols. Blanks, sentinels like 'TBD', NaN and infinities are
    non-numeric, as are magnitudes beyond the float range. Never raises.
    """

    if isinstance(value, (NumericCost, NonNumericCost)):
        return value
    if value is None:
        return NonNumericCost(raw="")
    if isinstance(value, bool):
        return NonNumericCost(raw=str(value))

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        # str() first so 0.1 stays 0.1 rather than its binary expansion.
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return NonNumericCost(raw=str(value))
    else:
        s = str(value).strip()
        if not _NUMERIC_TEXT.fullmatch(s):
            return NonNumericCost(raw=str(value))
        amount = Decimal(s)

    if not amount.is_finite() or not math.isfinite(float(amount)):
        return NonNumericCost(raw=str(value))
    return NumericCost(value=amount)


def format_amount(amount: Decimal) -> str:
    """Render an amount without exponent notation or trailing zeros."""

    return format(amount.normalize(), "f")


def _json_number(amount: Decimal) -> int | float:
    if amount == amount.to_integral_value():
        return int(amount)
    return float(amount)


@dataclass(frozen=True, slots=True)
class CostRow:
    id: int
    order_or_lot_id: str
    clin_id: str
    wbs_element_id: str
    actual_cost: Cost
    description: str | None = None

    @classmethod
    def from_raw(
        cls,
        *,
        id: int,
        order_or_lot_id: str,
        clin_id: str,
        wbs_element_id: str,
        actual_cost: Any,
        description: str | None = None,
    ) -> "CostRow":
        return cls(
            id=id,
            order_or_lot_id=order_or_lot_id,
            clin_id=clin_id,
            wbs_element_id=wbs_element_id,
            actual_cost=parse_cost(actual_cost),
            description=description,
        )

    @property
    def numeric_cost(self) -> Decimal | None:
        if isinstance(self.actual_cost, NumericCost):
            return self.actual_cost.value
        return None

    def to_dict(self) -> dict[str, Any]:
        cost = self.actual_cost
        if isinstance(cost, NumericCost):
            actual: Any = _json_number(cost.value)
        else:
            actual = cost.raw
        return {
            "id": self.id,
            "orderOrLotId": self.order_or_lot_id,
            "clinId": self.clin_id,
            "wbsElementId": self.wbs_element_id,
            "actualCost": actual,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    id: str
    rule_id: int
    row_id: int
    severity: Severity
    column: str
    message: str
    remediation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ruleId": self.rule_id,
            "rowId": self.row_id,
            "severity": self.severity.value,
            "column": self.column,
            "message": self.message,
            "remediation": self.remediation,
        }


@dataclass(frozen=True, slots=True)
class ValidationResult:
    passed: bool
    total_rows: int
    error_count: int
    warning_count: int
    issues: tuple[ValidationIssue, ...]
    rows: tuple[CostRow, ...]

    def issues_for_rule(self, rule_id: int) -> list[ValidationIssue]:
        return [i for i in self.issues if i.rule_id == rule_id]

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "totalRows": self.total_rows,
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
            "issues": [i.to_dict() for i in self.issues],
            "rows": [r.to_dict() for r in self.rows],
        }
