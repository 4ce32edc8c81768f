"""
Shared pydantic base for the stored JSON documents
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialising to the camelCase keys of the stored documents"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
