from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HistoryMessage(CamelModel):
    role: Literal["user", "assistant"]
    content: str = Field(min_length=1)


class ChatRequest(CamelModel):
    message: str
    conversation_history: list[HistoryMessage] = Field(default_factory=list)

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Message is required and must be a non-empty string")
        return value


class Source(CamelModel):
    chapter: str
    section: str
    relevance_score: float


class ChatMetadata(CamelModel):
    rag_enabled: bool
    documents_retrieved: int
    sources: list[Source]


class ChatResponse(CamelModel):
    success: bool = True
    response: str
    metadata: ChatMetadata


class TranslateRequest(CamelModel):
    text: str = Field(min_length=1)
    target_language: str = Field(min_length=1)
    source_language: str | None = None


class TranslateResponse(CamelModel):
    success: bool = True
    translated_text: str
    source_language: str
    target_language: str


ExperienceLevel = Literal["beginner", "intermediate", "advanced"]


class UserBackground(CamelModel):
    experience_level: str | None = None
    software_background: str = ""
    hardware_background: str = ""


class PersonalizeRequest(CamelModel):
    content: str = Field(min_length=1)
    user_background: UserBackground | None = None


class PersonalizeResponse(CamelModel):
    success: bool = True
    personalized_content: str
    user_level: ExperienceLevel
