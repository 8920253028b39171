from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (the web client's convention); snake_case also accepted."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
