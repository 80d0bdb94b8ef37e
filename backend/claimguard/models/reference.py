from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

MIN_SEVERITY = 1
MAX_SEVERITY = 5


class ReferenceDataError(ValueError):
    """Raised when reference tables are malformed or out of range."""


@dataclass(frozen=True)
class ProcedureReference:
    """CPT/HCPCS code metadata used by every engine."""
    code: str
    description: str
    severity: int
    avg_cost: float
    category: str

    def __post_init__(self):
        if not MIN_SEVERITY <= self.severity <= MAX_SEVERITY:
            raise ReferenceDataError(
                f"Severity for {self.code} must be in [{MIN_SEVERITY}, {MAX_SEVERITY}], got {self.severity}"
            )
        if self.avg_cost < 0:
            raise ReferenceDataError(f"Average cost for {self.code} must be >= 0")


@dataclass(frozen=True)
class BundlingRule:
    """NCCI-style bundle: bundled codes are not separately billable alongside the primary."""
    primary_code: str
    bundled_codes: tuple[str, ...]
    bundle_description: str
    correct_code: str
    correct_description: str


@dataclass(frozen=True)
class ReferenceDatabase:
    """
    Read-only lookup shared by all analyses in the process.

    Mappings are wrapped in MappingProxyType so engines cannot mutate them.
    """
    codes: Mapping[str, ProcedureReference]
    bundles: tuple[BundlingRule, ...] = ()
    severity_keywords: Mapping[int, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "codes", MappingProxyType(dict(self.codes)))
        object.__setattr__(self, "bundles", tuple(self.bundles))
        lexicon = {int(level): tuple(words) for level, words in self.severity_keywords.items()}
        for level in lexicon:
            if not MIN_SEVERITY <= level <= MAX_SEVERITY:
                raise ReferenceDataError(f"Lexicon level {level} outside [1, 5]")
        object.__setattr__(self, "severity_keywords", MappingProxyType(lexicon))

    def lookup(self, code: str) -> ProcedureReference | None:
        return self.codes.get(code)

    def keywords_for(self, level: int) -> tuple[str, ...]:
        return self.severity_keywords.get(level, ())

    def category_of(self, code: str) -> str | None:
        ref = self.codes.get(code)
        return ref.category if ref else None
