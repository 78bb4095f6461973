from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorDetail(ApiModel):
    kind: str
    message: str


class ErrorResponse(ApiModel):
    success: bool = False
    error: ErrorDetail


def error_responses(*status_codes: int) -> dict:
    """OpenAPI ``responses=`` entries documenting the error body."""
    return {code: {"model": ErrorResponse} for code in status_codes}
