"""
Shared pieces of the MongoDB document models.

PyObjectId lets pydantic accept either a BSON ObjectId or its 24-char hex
string and serialises back to the string form. MongoBaseModel maps the
document's ``_id`` onto ``id``.
"""

from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic_core import core_schema


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Coerce *value* to an ObjectId, or ``None`` when it is not a valid id.

    Callers treat ``None`` exactly like a missing document so malformed ids
    never produce a distinguishable error.
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


class PyObjectId(ObjectId):
    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_plain_validator_function(
            cls._coerce,
            serialization=core_schema.plain_serializer_function_ser_schema(
                str, when_used="json"
            ),
        )

    @staticmethod
    def _coerce(value: Any) -> ObjectId:
        oid = to_object_id(value)
        if oid is None:
            raise ValueError(f"not an ObjectId: {value!r}")
        return oid


class MongoBaseModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    def to_mongo(self) -> dict:
        """Document dict for insert; ``_id`` is left out until MongoDB assigns one."""
        data = self.model_dump(by_alias=True)
        if data.get("_id") is None:
            data.pop("_id", None)
        return data

    @classmethod
    def from_mongo(cls, data: Optional[dict]):
        return None if data is None else cls.model_validate(data)
