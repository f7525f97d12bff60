"""Pydantic request models for linking input; normalise caller field names into MedicineInput."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .models import MedicineInput


class MedicineItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(
        ...,
        validation_alias=AliasChoices("name", "medicine_name", "medicineName"),
        description="Medicine name as read from the prescription",
    )
    salt: str | None = Field(
        None,
        validation_alias=AliasChoices("salt", "medicine_salt", "generic_name"),
        description="Salt/composition text, e.g. 'Paracetamol 500mg'",
    )
    existing_id: int | None = Field(
        None,
        gt=0,
        validation_alias=AliasChoices("existing_id", "med_drug_id", "drug_id"),
        description="Catalog id chosen manually; skips fuzzy search",
    )

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("medicine name must not be blank")
        return v.strip()

    @field_validator("salt")
    @classmethod
    def blank_salt_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    def to_input(self) -> MedicineInput:
        return MedicineInput(
            name=self.name,
            salt=self.salt,
            existing_id=self.existing_id,
            extra=dict(self.model_extra or {}),
        )


class LinkingRequest(BaseModel):
    medicines: list[MedicineItem] = Field(
        ...,
        description="Prescription medicines in display order",
    )
    require_link: bool = Field(
        False,
        validation_alias=AliasChoices("require_link", "requireLink"),
        description="Fail the whole request if any medicine cannot be linked",
    )
    min_similarity: float | None = Field(
        None,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("min_similarity", "minSimilarity"),
        description="Override for the configured similarity threshold",
    )

    def to_inputs(self) -> list[MedicineInput]:
        return [m.to_input() for m in self.medicines]
