from __future__ import annotations

import uuid
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from mind_reset.errors import DecodeError

M = TypeVar("M", bound="DocumentModel")


def new_id() -> str:
    return str(uuid.uuid4())


class DocumentModel(BaseModel):
    """Model persisted as a store document (camelCase keys, id kept out of the body)."""

    class Config:
        populate_by_name = True

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})

    @classmethod
    def from_document(cls: type[M], doc_id: str, data: dict[str, Any]) -> M:
        try:
            return cls.model_validate({**data, "id": doc_id})
        except PydanticValidationError as exc:
            raise DecodeError(f"{cls.__name__} {doc_id}: {exc.error_count()} invalid field(s)") from exc
