"""Base pydantic model for payloads that cross the socket or REST boundary."""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
	"""camelCase on the wire, snake_case in Python; inbound accepts either."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	def to_wire(self) -> Dict[str, Any]:
		return self.model_dump(mode="json", by_alias=True)
