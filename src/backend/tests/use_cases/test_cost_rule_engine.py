from __future__ import annotations

from decimal import Decimal

from src.backend.v4.integrations.synthetic_cost_report import generate_cost_report
from src.backend.v4.use_cases.cost_report_checks import IssueAccumulator
from src.backend.v4.use_cases.cost_report_models import CostRow, Severity
from src.backend.v4.use_cases.cost_rule_engine import (
    CostReportRuleEngine,
    CostRuleThresholds,
    RuleRegistry,
)


def _row(row_id: int, cost, *, lot: str, wbs: str, clin: str = "0001") -> CostRow:
    return CostRow.from_raw(
        id=row_id, order_or_lot_id=lot, clin_id=clin, wbs_element_id=wbs, actual_cost=cost
    )


def _mixed_rows() -> list[CostRow]:
    return [
        _row(1, "TBD", lot="LOT-A", clin="0001", wbs="1.1"),
        _row(2, 100, lot="LOT-A", clin="0002", wbs="1.1"),
        _row(3, 500, lot="LOT-A", clin="0003", wbs="1.1.1"),
        _row(4, 10, lot="LOT-B", wbs="2.0"),
        _row(5, 10, lot="LOT-B", wbs="2.0"),
        _row(6, 150000, lot="LOT-C", wbs="4.0"),
    ]


def test_engine_empty_input_passes() -> None:
    result = CostReportRuleEngine().evaluate([])

    assert result.to_dict() == {
        "passed": True,
        "totalRows": 0,
        "errorCount": 0,
        "warningCount": 0,
        "issues": [],
        "rows": [],
    }


def test_engine_runs_rules_in_fixed_order() -> None:
    result = CostReportRuleEngine().evaluate(_mixed_rows())

    assert [(i.rule_id, i.row_id) for i in result.issues] == [
        (1, 1),
        (2, 4),
        (2, 5),
        (3, 1),
        (5, 6),
    ]
    assert [i.id for i in result.issues] == ["r1-1-1", "r2-4-2", "r2-5-3", "r3-1-4", "r5-6-5"]
    assert result.error_count == 2
    assert result.warning_count == 3
    assert result.passed is False
    assert result.total_rows == 6
    assert result.issues_for_rule(3)[0].message == "Child costs ($500) exceed parent WBS total ($100)."


def test_engine_is_idempotent() -> None:
    engine = CostReportRuleEngine()
    rows = _mixed_rows()

    assert engine.evaluate(rows).to_dict() == engine.evaluate(rows).to_dict()


def test_engine_counts_match_issue_severities() -> None:
    engine = CostReportRuleEngine()
    for name in ["report.xlsx", "bad_numbers.csv", "q3_error.xlsx", "clean.xlsx", "final_v2.xlsx"]:
        result = engine.evaluate(generate_cost_report(name))
        errors = sum(1 for i in result.issues if i.severity is Severity.ERROR)
        warnings = sum(1 for i in result.issues if i.severity is Severity.WARNING)
        assert result.error_count == errors
        assert result.warning_count == warnings
        assert result.passed == (errors == 0)
        assert len({i.id for i in result.issues}) == len(result.issues)


def test_engine_warnings_only_still_pass() -> None:
    rows = [_row(1, 10, lot="LOT-A", wbs="1.0"), _row(2, 10, lot="LOT-A", wbs="1.0")]
    result = CostReportRuleEngine().evaluate(rows)

    assert result.passed is True
    assert result.warning_count == 2


def test_engine_passes_rows_through() -> None:
    rows = _mixed_rows()
    result = CostReportRuleEngine().evaluate(iter(rows))
    assert list(result.rows) == rows


def test_engine_uses_configured_thresholds() -> None:
    rows = [
        _row(1, 5000, lot="LOT-A", wbs="7.0"),
        _row(2, 10, lot="LOT-B", wbs="7.0"),
        _row(3, 20, lot="LOT-C", wbs="7.0"),
    ]
    default = CostReportRuleEngine().evaluate(rows)
    assert default.issues == ()

    engine = CostReportRuleEngine(thresholds=CostRuleThresholds(large_cost_threshold=Decimal("1000")))
    result = engine.evaluate(rows)
    assert [(i.rule_id, i.row_id) for i in result.issues] == [(5, 1)]


def test_thresholds_from_rulebook() -> None:
    rulebook = {
        "rulebook": {
            "policies": {
                "tolerances": {
                    "wbs_rollup": {"ratio": "0.05"},
                    "cost_outlier": {"sigma": 2},
                    "one_time_cost": {"amount": "250,000"},
                }
            }
        }
    }
    th = CostRuleThresholds.from_rulebook(rulebook)
    assert th.rollup_tolerance == Decimal("0.05")
    assert th.outlier_sigma == Decimal("2")
    assert th.large_cost_threshold == Decimal("250000")


def test_thresholds_fall_back_to_defaults() -> None:
    assert CostRuleThresholds.from_rulebook({}) == CostRuleThresholds()

    bad = {"rulebook": {"policies": {"tolerances": {"cost_outlier": {"sigma": "three"}}}}}
    assert CostRuleThresholds.from_rulebook(bad).outlier_sigma == Decimal("3")


def test_engine_accepts_custom_registry() -> None:
    reg = RuleRegistry()

    @reg.register("always_warn")
    def _always_warn(rows, acc: IssueAccumulator, thresholds) -> None:
        for r in rows:
            acc.add(
                rule_id=99,
                row_id=r.id,
                severity=Severity.WARNING,
                column="description",
                message="custom",
                remediation="none",
            )

    engine = CostReportRuleEngine(registry=reg)
    result = engine.evaluate([_row(1, "TBD", lot="L", wbs="1.0")])

    assert engine.registry.stage_names() == ["always_warn"]
    assert [i.rule_id for i in result.issues] == [99]
    assert result.passed is True


def test_default_registry_stage_order() -> None:
    assert CostReportRuleEngine().registry.stage_names() == [
        "numeric_cost",
        "duplicate_entries",
        "wbs_rollup",
        "group_statistics",
    ]


def test_engine_reports_out_of_range_costs_instead_of_raising() -> None:
    rows = [
        _row(1, "1e1000000", lot="LOT-A", wbs="1.1"),
        _row(2, "1e1000000", lot="LOT-B", wbs="1.1"),
        _row(3, "-1e1000000", lot="LOT-C", wbs="1.1.1"),
    ]
    result = CostReportRuleEngine().evaluate(rows)

    assert [(i.rule_id, i.row_id) for i in result.issues] == [(1, 1), (1, 2), (1, 3)]
    assert result.issues[2].message == 'Found "-1e1000000" in cost field.'
    assert result.passed is False


def test_engine_handles_costs_at_float_range_limit() -> None:
    rows = [_row(i, "1.7e308", lot=f"LOT-{i}", wbs="8.0") for i in range(1, 5)]
    rows.append(_row(5, "-1.7e308", lot="LOT-5", wbs="8.1.1"))
    result = CostReportRuleEngine().evaluate(rows)

    assert [(i.rule_id, i.row_id) for i in result.issues] == [(1, 5)]
