"""Rule engine for cost report validation.

Goal
- Run the five cost report checks as an ordered pipeline over one immutable
  row snapshot.
- Keep outputs deterministic: same rows in, same counts, issues and issue ids out.

This module intentionally avoids FastAPI types/exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable

from src.backend.v4.use_cases.cost_report_checks import (
    DEFAULT_LARGE_COST_THRESHOLD,
    DEFAULT_OUTLIER_SIGMA,
    DEFAULT_ROLLUP_TOLERANCE,
    IssueAccumulator,
    check_duplicate_entries,
    check_group_statistics,
    check_numeric_costs,
    check_wbs_rollup,
)
from src.backend.v4.use_cases.cost_report_models import CostRow, ValidationResult

logger = logging.getLogger(__name__)


def _decimal_from_rulebook_value(value: Any, default: Decimal) -> Decimal:
    """Parse a decimal from rulebook config (e.g. '0.01', 100000, '100,000')."""
    if value is None or value == "":
        return default
    try:
        parsed = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        logger.warning("Ignoring non-numeric rulebook value %r; using %s", value, default)
        return default
    if not parsed.is_finite() or parsed < 0:
        logger.warning("Ignoring out-of-range rulebook value %r; using %s", value, default)
        return default
    return parsed


@dataclass(frozen=True, slots=True)
class CostRuleThresholds:
    rollup_tolerance: Decimal = DEFAULT_ROLLUP_TOLERANCE
    outlier_sigma: Decimal = DEFAULT_OUTLIER_SIGMA
    large_cost_threshold: Decimal = DEFAULT_LARGE_COST_THRESHOLD

    @classmethod
    def from_rulebook(cls, rulebook: dict[str, Any]) -> "CostRuleThresholds":
        """Read `rulebook.policies.tolerances`; missing keys keep the defaults."""

        policies = (rulebook.get("rulebook") or {}).get("policies") or {}
        tolerances = policies.get("tolerances") or {}
        return cls(
            rollup_tolerance=_decimal_from_rulebook_value(
                (tolerances.get("wbs_rollup") or {}).get("ratio"),
                DEFAULT_ROLLUP_TOLERANCE,
            ),
            outlier_sigma=_decimal_from_rulebook_value(
                (tolerances.get("cost_outlier") or {}).get("sigma"),
                DEFAULT_OUTLIER_SIGMA,
            ),
            large_cost_threshold=_decimal_from_rulebook_value(
                (tolerances.get("one_time_cost") or {}).get("amount"),
                DEFAULT_LARGE_COST_THRESHOLD,
            ),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "rollup_tolerance": str(self.rollup_tolerance),
            "outlier_sigma": str(self.outlier_sigma),
            "large_cost_threshold": str(self.large_cost_threshold),
        }


RuleStage = Callable[[tuple[CostRow, ...], IssueAccumulator, CostRuleThresholds], None]


class RuleRegistry:
    """Ordered stage registry; stages run in registration order."""

    def __init__(self) -> None:
        self._stages: dict[str, RuleStage] = {}

    def register(self, name: str) -> Callable[[RuleStage], RuleStage]:
        def _decorator(fn: RuleStage) -> RuleStage:
            self._stages[name] = fn
            return fn

        return _decorator

    def get(self, name: str) -> RuleStage | None:
        return self._stages.get(name)

    def stage_names(self) -> list[str]:
        return list(self._stages.keys())

    def stages(self) -> list[tuple[str, RuleStage]]:
        return list(self._stages.items())


class CostReportRuleEngine:
    """Evaluate a batch of cost rows against the cost report rules."""

    def __init__(
        self,
        registry: RuleRegistry | None = None,
        thresholds: CostRuleThresholds | None = None,
    ) -> None:
        self._registry = registry or _default_registry()
        self._thresholds = thresholds or CostRuleThresholds()

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def thresholds(self) -> CostRuleThresholds:
        return self._thresholds

    def evaluate(self, rows: Iterable[CostRow]) -> ValidationResult:
        snapshot = tuple(rows)
        acc = IssueAccumulator()

        for name, stage in self._registry.stages():
            before = len(acc.issues)
            stage(snapshot, acc, self._thresholds)
            logger.debug("Stage %s produced %d issue(s)", name, len(acc.issues) - before)

        result = ValidationResult(
            passed=acc.error_count == 0,
            total_rows=len(snapshot),
            error_count=acc.error_count,
            warning_count=acc.warning_count,
            issues=acc.issues,
            rows=snapshot,
        )
        logger.info(
            "Cost report evaluated: %d rows, %d errors, %d warnings",
            result.total_rows,
            result.error_count,
            result.warning_count,
        )
        return result


def _default_registry() -> RuleRegistry:
    reg = RuleRegistry()

    @reg.register("numeric_cost")
    def _stage_numeric_cost(
        rows: tuple[CostRow, ...], acc: IssueAccumulator, thresholds: CostRuleThresholds
    ) -> None:
        check_numeric_costs(rows, acc)

    @reg.register("duplicate_entries")
    def _stage_duplicate_entries(
        rows: tuple[CostRow, ...], acc: IssueAccumulator, thresholds: CostRuleThresholds
    ) -> None:
        check_duplicate_entries(rows, acc)

    @reg.register("wbs_rollup")
    def _stage_wbs_rollup(
        rows: tuple[CostRow, ...], acc: IssueAccumulator, thresholds: CostRuleThresholds
    ) -> None:
        check_wbs_rollup(rows, acc, tolerance=thresholds.rollup_tolerance)

    @reg.register("group_statistics")
    def _stage_group_statistics(
        rows: tuple[CostRow, ...], acc: IssueAccumulator, thresholds: CostRuleThresholds
    ) -> None:
        check_group_statistics(
            rows,
            acc,
            sigma=thresholds.outlier_sigma,
            large_cost_threshold=thresholds.large_cost_threshold,
        )

    return reg
