"""Cost Report Validation API Router.

This module handles the cost report endpoints: evaluating a batch of rows
against the rulebook-configured rules, describing the rules, and validating
deterministic sample reports.
"""

import asyncio
import logging
from collections import Counter
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.backend.v4.config.settings import RulebookError, config, load_rulebook
from src.backend.v4.integrations.synthetic_cost_report import generate_cost_report
from src.backend.v4.use_cases.cost_report_models import CostRow
from src.backend.v4.use_cases.cost_rule_engine import CostReportRuleEngine, CostRuleThresholds

logger = logging.getLogger(__name__)

cost_report_router = APIRouter(tags=["Cost Report Validation"])


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------


class CostRowPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int = Field(gt=0)
    order_or_lot_id: str
    clin_id: str
    wbs_element_id: str
    # Left untyped so parse_cost sees the raw JSON value (true stays a bool).
    actual_cost: Any = None
    description: str | None = None

    def to_cost_row(self) -> CostRow:
        return CostRow.from_raw(
            id=self.id,
            order_or_lot_id=self.order_or_lot_id,
            clin_id=self.clin_id,
            wbs_element_id=self.wbs_element_id,
            actual_cost=self.actual_cost,
            description=self.description,
        )


class CostReportValidationRequest(BaseModel):
    rows: list[CostRowPayload]

    @field_validator("rows")
    @classmethod
    def _row_ids_unique(cls, rows: list[CostRowPayload]) -> list[CostRowPayload]:
        counts = Counter(r.id for r in rows)
        dupes = sorted(rid for rid, c in counts.items() if c > 1)
        if dupes:
            raise ValueError(f"row ids must be unique within a batch; duplicated: {dupes}")
        return rows


class SampleCostReportRequest(BaseModel):
    filename: str = Field(min_length=1)
    force_clean: bool = False


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _load_rulebook_or_raise() -> dict[str, Any]:
    try:
        return load_rulebook(config.rulebook_path)
    except RulebookError as e:
        raise HTTPException(status_code=404 if e.missing else 400, detail=str(e))


async def _evaluate(rows: list[CostRow], rulebook: dict[str, Any]) -> dict[str, Any]:
    thresholds = CostRuleThresholds.from_rulebook(rulebook)
    engine = CostReportRuleEngine(thresholds=thresholds)
    # Pure CPU work; keep it off the event loop for large batches.
    result = await asyncio.to_thread(engine.evaluate, rows)
    payload = result.to_dict()
    payload["thresholds"] = thresholds.to_dict()
    return payload


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@cost_report_router.post("/cost-report/validate")
async def validate_cost_report(body: CostReportValidationRequest):
    """Evaluate a batch of cost rows and return the verdict.

    Data-quality problems are reported as issues, never as HTTP errors.
    Numeric costs are echoed back as JSON numbers, non-numeric ones as their raw text.
    """

    rulebook = _load_rulebook_or_raise()
    rows = [r.to_cost_row() for r in body.rows]
    payload = await _evaluate(rows, rulebook)

    logger.info(
        "Cost report validated: %d rows, passed=%s",
        payload["totalRows"],
        payload["passed"],
    )
    return payload


@cost_report_router.get("/cost-report/rules")
async def describe_cost_report_rules():
    """Describe the rules and active thresholds from the rulebook."""

    rulebook = _load_rulebook_or_raise()
    meta = rulebook.get("rulebook") or {}
    return {
        "rulebook": {
            "id": meta.get("id"),
            "version": meta.get("version"),
            "title": meta.get("title"),
            "path": str(config.rulebook_path),
        },
        "thresholds": CostRuleThresholds.from_rulebook(rulebook).to_dict(),
        "rules": [r for r in (rulebook.get("rules") or []) if isinstance(r, dict)],
    }


@cost_report_router.post("/cost-report/sample")
async def validate_sample_cost_report(body: SampleCostReportRequest):
    """Generate the deterministic sample report for a filename and validate it."""

    rulebook = _load_rulebook_or_raise()
    rows = generate_cost_report(body.filename, force_clean=body.force_clean)
    payload = await _evaluate(rows, rulebook)
    payload["filename"] = body.filename

    logger.info(
        "Sample cost report %s validated: %d rows, %d errors, %d warnings",
        body.filename,
        payload["totalRows"],
        payload["errorCount"],
        payload["warningCount"],
    )
    return payload
