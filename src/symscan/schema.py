from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Output records are camelCase in JSON and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class MethodChunkDTO(WireModel):
    class_name: str
    method_name: str
    return_type: str
    parameters: List[str] = []
    method_code: str
    called_by: List[str] = []
    dependencies: List[str] = []
