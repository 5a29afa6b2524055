"""Deterministic synthetic cost reports.

Stands in for a real file parser in demos and tests: the same filename always
yields the same rows, including the same injected data-quality problems.

Keyword behaviour (case-insensitive, on the filename):
- 'clean', 'valid', 'fixed', 'final' -> no injected errors
- 'error', 'fail', 'bad'             -> injected errors (wins over the above)
- otherwise 'v2' / 'rev1'            -> clean (simulates a corrected resubmission)
- otherwise                          -> injected errors
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import replace

from src.backend.v4.use_cases.cost_report_models import CostRow, parse_cost

DESCRIPTIONS = [
    "Project Management",
    "System Engineering",
    "Software Development",
    "Hardware Integration",
    "Testing & QA",
    "Documentation",
    "Travel Expenses",
    "Material Procurement",
    "Consulting Services",
    "Safety Compliance",
    "Cloud Infrastructure",
    "Data Analysis",
]

WBS_ELEMENTS = ["1.0", "1.1", "1.2", "2.0", "2.1", "3.0", "3.1.1", "3.1.2", "4.0"]

_CLEAN_KEYWORDS = ("clean", "valid", "fixed", "final")
_ERROR_KEYWORDS = ("error", "fail", "bad")
_REVISION_KEYWORDS = ("v2", "rev1")


def seed_for_filename(filename: str) -> int:
    digest = hashlib.sha256(filename.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def should_inject_errors(filename: str, *, force_clean: bool = False) -> bool:
    name = filename.lower()
    if any(k in name for k in _ERROR_KEYWORDS):
        return True
    if any(k in name for k in _CLEAN_KEYWORDS):
        return False
    if any(k in name for k in _REVISION_KEYWORDS):
        return False
    return not force_clean


def generate_cost_report(filename: str, *, force_clean: bool = False) -> list[CostRow]:
    rng = random.Random(seed_for_filename(filename))

    row_count = rng.randint(20, 50)
    batch_id = rng.randint(100, 999)
    rows = [
        CostRow(
            id=i,
            order_or_lot_id=f"LOT-{batch_id}",
            clin_id="0001",
            wbs_element_id=rng.choice(WBS_ELEMENTS),
            actual_cost=parse_cost(rng.randint(1000, 50000)),
            description=rng.choice(DESCRIPTIONS),
        )
        for i in range(1, row_count + 1)
    ]

    if not should_inject_errors(filename, force_clean=force_clean):
        return rows

    # Distinct indices over the original rows; duplicates are appended after.
    targets = rng.sample(range(row_count), rng.randint(2, 6))
    for idx in targets:
        row = rows[idx]
        kind = rng.randint(1, 4)
        if kind == 1:
            rows[idx] = replace(row, actual_cost=parse_cost("TBD"), description="Pending Vendor Quote")
        elif kind == 2:
            rows[idx] = replace(
                row,
                actual_cost=parse_cost(-rng.randint(500, 5000)),
                description="Accounting Adjustment",
            )
        elif kind == 3:
            rows[idx] = replace(
                row,
                wbs_element_id="1.1.1",
                actual_cost=parse_cost(999999),
                description="Unexpected Overrun",
            )
        else:
            rows.append(
                replace(
                    row,
                    id=len(rows) + 1,
                    description=f"{row.description} (Duplicate)",
                )
            )

    return rows
