from dataclasses import dataclass


@dataclass(frozen=True)
class ClaimLineItem:
    """A single billed line item, already normalized by the ingestion layer."""
    claim_id: str
    patient_name: str
    service_date: str
    service_time: str
    department: str
    procedure_code: str
    procedure_description: str
    billed_amount: float = 0.0
    clinical_notes: str = ""
    latitude: float | None = None
    longitude: float | None = None

    @property
    def has_notes(self) -> bool:
        return bool(self.clinical_notes and self.clinical_notes.strip())

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None
