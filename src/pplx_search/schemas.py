from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, field_validator

SYSTEM_PROMPT = "Be accurate, helpful and concise."


def _scalar_to_str(value: Any) -> Any:
    # Numbers and booleans in text fields are kept as their string form
    if isinstance(value, (int, float)):
        return str(value)
    return value


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    model: str
    messages: List[ChatMessage]


class Citation(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    url: Optional[str] = None

    @field_validator("title", "url", mode="before")
    @classmethod
    def coerce_text(cls, value):
        return _scalar_to_str(value)


class ResponseMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    web_search_results: Optional[List[Citation]] = None


class ResponseMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    content: Optional[str] = None
    metadata: Optional[ResponseMetadata] = None

    @field_validator("content", mode="before")
    @classmethod
    def coerce_content(cls, value):
        return _scalar_to_str(value)


class Choice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: Optional[ResponseMessage] = None


class ChatResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    choices: List[Choice] = []
