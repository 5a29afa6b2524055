"""Smoke test: validate the cost report YAML rulebook.

This is intentionally lightweight and does NOT evaluate any rows.
It catches common issues (missing keys, duplicate rule IDs, unknown stages,
unparsable tolerances) so you can iterate on the rulebook quickly.

Run:
  python scripts/cost_rulebook_smoke.py

Optional env vars:
  COST_RULEBOOK_PATH  (default: data/cost_rulebooks/cost_report_rules.yaml)
"""

from __future__ import annotations

import os
import sys
from collections import Counter

from dotenv import load_dotenv

# Allow running as: `python scripts/cost_rulebook_smoke.py`
_REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if _REPO_ROOT not in sys.path:
    sys.path.insert(0, _REPO_ROOT)

load_dotenv(override=False)

from src.backend.v4.config.settings import RulebookError, config, load_rulebook
from src.backend.v4.use_cases.cost_rule_engine import CostReportRuleEngine, CostRuleThresholds


def _fail(msg: str) -> int:
    print(f"ERROR: {msg}", file=sys.stderr)
    return 1


def main() -> int:
    path = config.rulebook_path
    try:
        doc = load_rulebook(path)
    except RulebookError as e:
        return _fail(str(e))

    rulebook = doc.get("rulebook")
    if not isinstance(rulebook, dict):
        return _fail("Missing or invalid top-level key: rulebook")

    for key in ["id", "version", "title", "policies"]:
        if not rulebook.get(key):
            return _fail(f"rulebook.{key} is required")

    rules = doc.get("rules")
    if not isinstance(rules, list) or not rules:
        return _fail("Top-level rules must be a non-empty list")

    missing_rule_ids = [i for i, r in enumerate(rules) if not isinstance(r, dict) or not r.get("rule_id")]
    if missing_rule_ids:
        return _fail(f"rules entries missing rule_id at indexes: {missing_rule_ids}")

    rule_ids = [r["rule_id"] for r in rules]
    dupes = [rid for rid, c in Counter(rule_ids).items() if c > 1]
    if dupes:
        return _fail(f"Duplicate rule_id(s): {dupes}")

    bad_severity = [r["rule_id"] for r in rules if r.get("severity") not in {"ERROR", "WARNING"}]
    if bad_severity:
        return _fail(f"rules with severity other than ERROR/WARNING: {bad_severity}")

    supported_stages = set(CostReportRuleEngine().registry.stage_names())
    unknown_stages = sorted({r.get("stage") for r in rules if r.get("stage") not in supported_stages}, key=str)

    thresholds = CostRuleThresholds.from_rulebook(doc)

    print("✅ Rulebook parsed")
    print(f"- Path: {path}")
    print(f"- Rulebook ID: {rulebook.get('id')}")
    print(f"- Version: {rulebook.get('version')}")
    print(f"- Rules: {len(rules)}")
    for k, v in thresholds.to_dict().items():
        print(f"- {k}: {v}")
    if unknown_stages:
        print("- Unknown stage values found:")
        for s in unknown_stages:
            print(f"  - {s}")
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
