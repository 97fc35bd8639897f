from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, field_validator

from .config import DATA_URI_PREFIX


class ImageRecord(BaseModel):
    """One stored image: a numeric id and its canonical data URI."""

    model_config = ConfigDict(frozen=True)

    id: StrictInt
    encoded_image: StrictStr = Field(alias="encodedImage")

    @field_validator("encoded_image")
    @classmethod
    def _check_prefix(cls, value: str) -> str:
        if not value.startswith(DATA_URI_PREFIX):
            raise ValueError(f"encodedImage must start with {DATA_URI_PREFIX!r}")
        return value

    def to_document(self) -> dict[str, object]:
        return self.model_dump(by_alias=True)


def sort_by_id(records) -> list[ImageRecord]:
    return sorted(records, key=lambda record: record.id)
