"""Reference tables: CPT codes, NCCI bundles and the severity keyword lexicon."""

import json
import logging
from functools import lru_cache
from pathlib import Path

from claimguard.config import settings
from claimguard.models.reference import (
    BundlingRule, ProcedureReference, ReferenceDatabase, ReferenceDataError,
)

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────
# CPT / HCPCS codes with regional average costs (INR)
# ──────────────────────────────────────────────
CPT_CODES = [
    # E&M Emergency department
    {"code": "99281", "description": "Emergency department visit, self-limited or minor problem", "severity": 1, "avg_cost": 800.0, "category": "E&M"},
    {"code": "99283", "description": "Emergency department visit, moderate severity", "severity": 3, "avg_cost": 2500.0, "category": "E&M"},
    {"code": "99284", "description": "Emergency department visit, high severity, urgent evaluation", "severity": 4, "avg_cost": 4000.0, "category": "E&M"},
    {"code": "99285", "description": "Emergency department visit, high severity with threat to life", "severity": 5, "avg_cost": 6500.0, "category": "E&M"},
    # E&M Office visits
    {"code": "99212", "description": "Office visit, established patient, straightforward", "severity": 1, "avg_cost": 500.0, "category": "E&M"},
    {"code": "99213", "description": "Office visit, established patient, low complexity", "severity": 2, "avg_cost": 800.0, "category": "E&M"},
    {"code": "99214", "description": "Office visit, established patient, moderate complexity", "severity": 3, "avg_cost": 1200.0, "category": "E&M"},
    {"code": "99215", "description": "Office visit, established patient, high complexity", "severity": 4, "avg_cost": 1800.0, "category": "E&M"},
    # Critical care
    {"code": "99291", "description": "Critical care, first 30-74 minutes", "severity": 5, "avg_cost": 9000.0, "category": "Critical Care"},
    # Radiology
    {"code": "73600", "description": "X-ray ankle, 2 views", "severity": 1, "avg_cost": 600.0, "category": "Radiology"},
    {"code": "73610", "description": "X-ray ankle, complete, 3 views", "severity": 1, "avg_cost": 800.0, "category": "Radiology"},
    {"code": "71046", "description": "Chest X-ray, 2 views", "severity": 1, "avg_cost": 500.0, "category": "Radiology"},
    {"code": "73721", "description": "MRI knee joint without contrast", "severity": 3, "avg_cost": 7000.0, "category": "Radiology"},
    {"code": "70553", "description": "MRI brain with and without contrast", "severity": 3, "avg_cost": 12000.0, "category": "Radiology"},
    # Surgery
    {"code": "49320", "description": "Diagnostic laparoscopy, abdomen", "severity": 4, "avg_cost": 35000.0, "category": "Surgery"},
    {"code": "44950", "description": "Appendectomy", "severity": 4, "avg_cost": 40000.0, "category": "Surgery"},
    {"code": "44970", "description": "Laparoscopic appendectomy", "severity": 4, "avg_cost": 55000.0, "category": "Surgery"},
    {"code": "12001", "description": "Simple repair of superficial wound, 2.5 cm or less", "severity": 2, "avg_cost": 1500.0, "category": "Surgery"},
    {"code": "23650", "description": "Closed treatment of shoulder dislocation with manipulation", "severity": 3, "avg_cost": 8000.0, "category": "Surgery"},
    {"code": "29240", "description": "Strapping, shoulder", "severity": 1, "avg_cost": 600.0, "category": "Surgery"},
    # Physical therapy
    {"code": "97110", "description": "Therapeutic exercise, physiotherapy, 15 minutes", "severity": 1, "avg_cost": 700.0, "category": "Physical Therapy"},
    # Supplies
    {"code": "99070", "description": "Supplies and materials, ankle brace and medication", "severity": 1, "avg_cost": 400.0, "category": "Supplies"},
    {"code": "J1885", "description": "Injection, ketorolac tromethamine, per 15 mg", "severity": 1, "avg_cost": 150.0, "category": "Supplies"},
]

# ──────────────────────────────────────────────
# NCCI bundling edits
# ──────────────────────────────────────────────
NCCI_BUNDLES = [
    {
        "primary_code": "44970",
        "bundled_codes": ["49320", "44950"],
        "bundle_description": "a diagnostic laparoscopy and an open appendectomy are components of a laparoscopic appendectomy",
        "correct_single_code": "44970",
        "correct_description": "Laparoscopic appendectomy",
    },
    {
        "primary_code": "23650",
        "bundled_codes": ["29240"],
        "bundle_description": "shoulder strapping is included in closed treatment of a shoulder dislocation",
        "correct_single_code": "23650",
        "correct_description": "Closed treatment of shoulder dislocation with manipulation",
    },
    {
        "primary_code": "99285",
        "bundled_codes": ["99283", "99284"],
        "bundle_description": "only one emergency department visit level may be billed per encounter",
        "correct_single_code": "99285",
        "correct_description": "Emergency department visit, high severity with threat to life",
    },
]

# ──────────────────────────────────────────────
# Severity lexicon (level -> phrases), matched as lowercase substrings
# ──────────────────────────────────────────────
SEVERITY_KEYWORDS = {
    5: ["life threatening", "cardiac arrest", "code blue", "resuscitation", "unresponsive",
        "unstable", "intubated", "critical condition", "septic shock"],
    4: ["severe", "acute", "emergency surgery", "high severity", "fracture", "hemorrhage",
        "sepsis", "admitted"],
    3: ["moderate", "persistent", "infection", "laceration", "dislocation", "guarding",
        "swelling"],
    2: ["mild", "minor", "sprain", "discomfort", "follow-up", "follow up", "tenderness"],
    1: ["routine", "stable", "discharged", "no distress", "healthy", "normal"],
}


def build_reference_database(raw: dict) -> ReferenceDatabase:
    """
    Build a ReferenceDatabase from the JSON layout
    ``{"codes": {code: {...}}, "ncci_bundles": [...], "severity_keywords": {"1": [...]}}``.
    """
    try:
        codes = {
            code: ProcedureReference(
                code=code,
                description=str(info["description"]),
                severity=int(info["severity"]),
                avg_cost=float(info.get("avg_cost", info.get("avg_cost_inr", 0.0))),
                category=str(info["category"]),
            )
            for code, info in raw.get("codes", {}).items()
        }
        bundles = tuple(
            BundlingRule(
                primary_code=str(b["primary_code"]),
                bundled_codes=tuple(str(c) for c in b["bundled_codes"]),
                bundle_description=str(b.get("bundle_description", "")),
                correct_code=str(b["correct_single_code"]),
                correct_description=str(b.get("correct_description", "")),
            )
            for b in raw.get("ncci_bundles", [])
        )
        lexicon = {
            int(level): tuple(str(w) for w in words)
            for level, words in raw.get("severity_keywords", {}).items()
        }
    except ReferenceDataError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise ReferenceDataError(f"Malformed reference data: {exc}") from exc

    return ReferenceDatabase(codes=codes, bundles=bundles, severity_keywords=lexicon)


def builtin_reference_data() -> dict:
    """Return the built-in tables in the JSON layout."""
    return {
        "codes": {
            c["code"]: {k: v for k, v in c.items() if k != "code"} for c in CPT_CODES
        },
        "ncci_bundles": NCCI_BUNDLES,
        "severity_keywords": {str(level): words for level, words in SEVERITY_KEYWORDS.items()},
    }


def load_reference_database(path: str | Path | None = None) -> ReferenceDatabase:
    """Load reference data from a JSON file, or the built-in tables when no path is given."""
    if path is None:
        return build_reference_database(builtin_reference_data())

    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as exc:
        raise ReferenceDataError(f"Reference data file {path} is not valid JSON: {exc}") from exc

    db = build_reference_database(raw)
    logger.info(
        "Loaded reference data from %s: %d codes, %d bundles",
        path, len(db.codes), len(db.bundles),
    )
    return db


@lru_cache(maxsize=1)
def get_reference_database() -> ReferenceDatabase:
    """Process-wide reference database, loaded once from settings."""
    return load_reference_database(settings.reference_data_path or None)
