from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# session_<epoch ms>_<random>, as generated by the seat selection client
SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]{1,128}$"

SeatNumber = Annotated[str, Field(min_length=1, max_length=16)]


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code uses field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)
