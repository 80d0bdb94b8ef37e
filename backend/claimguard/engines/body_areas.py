"""
Body-area lookup shared by the severity and ghost-service engines.

A procedure maps to the first area whose code list contains its code or
whose keywords appear in its description.
"""

from collections import Counter
from collections.abc import Iterable
from types import MappingProxyType

BODY_AREA_MAP = MappingProxyType({
    "ankle/foot": {
        "codes": ("73600", "73610", "73620", "73630"),
        "keywords": ("ankle", "foot", "tarsal", "metatarsal"),
    },
    "knee": {
        "codes": ("73560", "73721", "27447"),
        "keywords": ("knee", "patellar", "tibial"),
    },
    "hip": {
        "codes": ("73501", "27130"),
        "keywords": ("hip", "femoral", "acetabul"),
    },
    "brain/head": {
        "codes": ("70553", "70551", "70552", "70540"),
        "keywords": ("brain", "head", "cranial", "cerebral", "neurological"),
    },
    "abdomen": {
        "codes": ("49320", "44950", "44970", "74177"),
        "keywords": ("abdomen", "abdominal", "appendix", "laparoscop", "bowel"),
    },
    "chest": {
        "codes": ("71046", "71275"),
        "keywords": ("chest", "thorax", "pulmonary", "cardiac", "lung"),
    },
    "spine": {
        "codes": ("72148", "72141"),
        "keywords": ("spine", "spinal", "lumbar", "cervical", "vertebral"),
    },
    "wrist/hand": {
        "codes": ("73100", "73110", "73120"),
        "keywords": ("wrist", "hand", "carpal", "metacarpal"),
    },
    "shoulder": {
        "codes": ("73221", "23472", "23650", "29240"),
        "keywords": ("shoulder", "rotator", "acromial", "clavicle"),
    },
})

# Categories that can accompany any body area
GENERIC_CATEGORIES = frozenset({"E&M", "Supplies", "Physical Therapy"})


def body_area_for(code: str, description: str) -> str | None:
    lower_desc = description.lower()
    for area, mapping in BODY_AREA_MAP.items():
        if code in mapping["codes"]:
            return area
        if any(kw in lower_desc for kw in mapping["keywords"]):
            return area
    return None


def dominant_area(areas: Iterable[str | None]) -> str | None:
    """Area with the most procedures; ties go to the area seen first."""
    counts = Counter(a for a in areas if a)
    if not counts:
        return None
    return counts.most_common(1)[0][0]
