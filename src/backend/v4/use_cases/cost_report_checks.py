"""Deterministic cost report checks (Rules 1-5).

Each check takes the full row snapshot plus the shared IssueAccumulator and
appends its findings. Checks never look at each other's issues, only at
aggregates derived from the rows (WBS totals, per-WBS cost lists).

No IO here: functions accept already-produced rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from src.backend.v4.use_cases.cost_report_models import (
    COLUMN_ACTUAL_COST,
    COLUMN_KEY_COMBINATION,
    COLUMN_WBS_ELEMENT,
    CostRow,
    NonNumericCost,
    NumericCost,
    Severity,
    ValidationIssue,
    format_amount,
)

RULE_NUMERIC_COST = 1
RULE_DUPLICATE_ENTRY = 2
RULE_WBS_ROLLUP = 3
RULE_COST_OUTLIER = 4
RULE_ONE_TIME_COST = 5

DEFAULT_ROLLUP_TOLERANCE = Decimal("0.01")
DEFAULT_OUTLIER_SIGMA = Decimal("3")
DEFAULT_LARGE_COST_THRESHOLD = Decimal("100000")

_OUTLIER_MIN_GROUP_SIZE = 3


class IssueAccumulator:
    """Ordered, append-only issue list with severity counters.

    One instance per evaluation. Issue ids are content-derived
    (`r<rule>-<row>-<seq>`) so identical input yields identical ids.
    """

    def __init__(self) -> None:
        self._issues: list[ValidationIssue] = []
        self._seq = 0
        self.error_count = 0
        self.warning_count = 0

    @property
    def issues(self) -> tuple[ValidationIssue, ...]:
        return tuple(self._issues)

    def add(
        self,
        *,
        rule_id: int,
        row_id: int,
        severity: Severity,
        column: str,
        message: str,
        remediation: str,
    ) -> ValidationIssue:
        self._seq += 1
        issue = ValidationIssue(
            id=f"r{rule_id}-{row_id}-{self._seq}",
            rule_id=rule_id,
            row_id=row_id,
            severity=severity,
            column=column,
            message=message,
            remediation=remediation,
        )
        self._issues.append(issue)
        if severity is Severity.ERROR:
            self.error_count += 1
        else:
            self.warning_count += 1
        return issue


# ---------------------------------------------------------------------------
# Rule 1: numeric & non-negative cost
# ---------------------------------------------------------------------------


def check_numeric_costs(rows: Sequence[CostRow], acc: IssueAccumulator) -> None:
    for row in rows:
        cost = row.actual_cost
        if isinstance(cost, NonNumericCost):
            acc.add(
                rule_id=RULE_NUMERIC_COST,
                row_id=row.id,
                severity=Severity.ERROR,
                column=COLUMN_ACTUAL_COST,
                message=f'Found "{cost.raw}" in cost field.',
                remediation="Replace with numeric value or remove row.",
            )
        elif isinstance(cost, NumericCost) and cost.value < 0:
            acc.add(
                rule_id=RULE_NUMERIC_COST,
                row_id=row.id,
                severity=Severity.ERROR,
                column=COLUMN_ACTUAL_COST,
                message=f"Negative cost found: {format_amount(cost.value)}.",
                remediation="Verify cost is non-negative.",
            )


# ---------------------------------------------------------------------------
# Rule 2: duplicate entries
# ---------------------------------------------------------------------------


def group_by_entry_key(rows: Iterable[CostRow]) -> dict[tuple[str, str, str], list[int]]:
    """Row ids per (order/lot, CLIN, WBS), in order of first appearance."""

    groups: dict[tuple[str, str, str], list[int]] = {}
    for row in rows:
        key = (row.order_or_lot_id, row.clin_id, row.wbs_element_id)
        groups.setdefault(key, []).append(row.id)
    return groups


def check_duplicate_entries(rows: Sequence[CostRow], acc: IssueAccumulator) -> None:
    for key, row_ids in group_by_entry_key(rows).items():
        if len(row_ids) < 2:
            continue
        label = " / ".join(key)
        for row_id in row_ids:
            acc.add(
                rule_id=RULE_DUPLICATE_ENTRY,
                row_id=row_id,
                severity=Severity.WARNING,
                column=COLUMN_KEY_COMBINATION,
                message=f"Duplicate entry for key: {label}",
                remediation="Consolidate into single row or add distinguishing detail.",
            )


# ---------------------------------------------------------------------------
# Rule 3: WBS roll-up consistency
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class WBSNode:
    own_cost: Decimal = Decimal("0")
    children_cost: Decimal = Decimal("0")


def parent_wbs(wbs: str) -> str | None:
    """Immediate roll-up parent of a WBS path.

    Only paths with more than two segments have a parent: '3.1.1' rolls into
    '3.1', but '3.1' does not roll into '3'.
    """

    parts = wbs.split(".")
    if len(parts) <= 2:
        return None
    return ".".join(parts[:-1])


def build_wbs_rollup(rows: Iterable[CostRow]) -> dict[str, WBSNode]:
    """Aggregate valid costs per WBS node and roll children into parents.

    Only numeric, non-negative costs count. Nodes exist only for WBS strings
    present in the data; a child whose parent never appears is not rolled up.
    """

    nodes: dict[str, WBSNode] = {}
    for row in rows:
        amount = row.numeric_cost
        if amount is None or amount < 0:
            continue
        node = nodes.setdefault(row.wbs_element_id, WBSNode())
        node.own_cost += amount

    for wbs, node in nodes.items():
        parent = parent_wbs(wbs)
        if parent is not None and parent in nodes:
            nodes[parent].children_cost += node.own_cost

    return nodes


def check_wbs_rollup(
    rows: Sequence[CostRow],
    acc: IssueAccumulator,
    *,
    tolerance: Decimal = DEFAULT_ROLLUP_TOLERANCE,
) -> None:
    nodes = build_wbs_rollup(rows)
    for wbs, node in nodes.items():
        if node.children_cost <= 0:
            continue
        if node.children_cost <= node.own_cost * (1 + tolerance):
            continue
        parent_row = next((r for r in rows if r.wbs_element_id == wbs), None)
        if parent_row is None:
            continue
        acc.add(
            rule_id=RULE_WBS_ROLLUP,
            row_id=parent_row.id,
            severity=Severity.ERROR,
            column=COLUMN_WBS_ELEMENT,
            message=(
                f"Child costs (${format_amount(node.children_cost)}) exceed "
                f"parent WBS total (${format_amount(node.own_cost)})."
            ),
            remediation="Verify parent cost includes all child costs.",
        )


# ---------------------------------------------------------------------------
# Rules 4-5: outliers and one-time large costs
# ---------------------------------------------------------------------------


def group_costs_by_wbs(rows: Iterable[CostRow]) -> dict[str, list[Decimal]]:
    """Numeric costs (negatives included) per WBS, in row order."""

    groups: dict[str, list[Decimal]] = {}
    for row in rows:
        amount = row.numeric_cost
        if amount is not None:
            groups.setdefault(row.wbs_element_id, []).append(amount)
    return groups


def population_stats(costs: Sequence[Decimal]) -> tuple[Decimal, Decimal]:
    """Mean and population standard deviation (divides by n, not n - 1)."""

    n = len(costs)
    if n == 0:
        return Decimal("0"), Decimal("0")
    mean = sum(costs, Decimal("0")) / n
    variance = sum(((c - mean) ** 2 for c in costs), Decimal("0")) / n
    return mean, variance.sqrt()


def _first_row_with_cost(rows: Iterable[CostRow], wbs: str, cost: Decimal) -> CostRow | None:
    # Lossy when several rows share a value; the first one takes the finding.
    for row in rows:
        if row.wbs_element_id == wbs and row.numeric_cost == cost:
            return row
    return None


def check_cost_outliers(
    rows: Sequence[CostRow],
    acc: IssueAccumulator,
    *,
    wbs: str,
    costs: Sequence[Decimal],
    sigma: Decimal = DEFAULT_OUTLIER_SIGMA,
) -> None:
    if len(costs) < _OUTLIER_MIN_GROUP_SIZE:
        return
    mean, std_dev = population_stats(costs)
    if std_dev <= 0:
        return
    for cost in costs:
        if abs(cost - mean) <= sigma * std_dev:
            continue
        row = _first_row_with_cost(rows, wbs, cost)
        if row is None:
            continue
        acc.add(
            rule_id=RULE_COST_OUTLIER,
            row_id=row.id,
            severity=Severity.WARNING,
            column=COLUMN_ACTUAL_COST,
            message=(
                f"Cost ${format_amount(cost)} is an outlier "
                f"(>{format_amount(sigma)} SD from mean ${mean:.2f})."
            ),
            remediation="Verify cost is accurate or add explanatory note.",
        )


def check_one_time_cost(
    rows: Sequence[CostRow],
    acc: IssueAccumulator,
    *,
    wbs: str,
    costs: Sequence[Decimal],
    threshold: Decimal = DEFAULT_LARGE_COST_THRESHOLD,
) -> None:
    large = [c for c in costs if c > threshold]
    # Two or more large costs are recurring, not one-time.
    if len(large) != 1:
        return
    cost = large[0]
    row = _first_row_with_cost(rows, wbs, cost)
    if row is None:
        return
    acc.add(
        rule_id=RULE_ONE_TIME_COST,
        row_id=row.id,
        severity=Severity.WARNING,
        column=COLUMN_ACTUAL_COST,
        message=f"Single large cost (${format_amount(cost)}) detected in WBS.",
        remediation="Confirm if this is a one-time event.",
    )


def check_group_statistics(
    rows: Sequence[CostRow],
    acc: IssueAccumulator,
    *,
    sigma: Decimal = DEFAULT_OUTLIER_SIGMA,
    large_cost_threshold: Decimal = DEFAULT_LARGE_COST_THRESHOLD,
) -> None:
    """Rules 4 and 5, interleaved per WBS group."""

    for wbs, costs in group_costs_by_wbs(rows).items():
        check_cost_outliers(rows, acc, wbs=wbs, costs=costs, sigma=sigma)
        check_one_time_cost(rows, acc, wbs=wbs, costs=costs, threshold=large_cost_threshold)
