"""Request/response models shared by every completion backend."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..constants import BackendKind


class ChatMessage(BaseModel):
    """One role-tagged message of a completion request."""
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionOptions(BaseModel):
    """Generation options; unset values fall back to gateway defaults."""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = Field(default=None, gt=0)
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None

    @field_validator("temperature")
    def validate_temperature(cls, v: Optional[float]) -> Optional[float]:
        """Validate temperature."""
        if v is not None and (v < 0 or v > 2):
            raise ValueError("Temperature must be between 0 and 2")
        return v

    @field_validator("top_p")
    def validate_top_p(cls, v: Optional[float]) -> Optional[float]:
        """Validate top_p."""
        if v is not None and (v < 0 or v > 1):
            raise ValueError("Top_p must be between 0 and 1")
        return v


class TokenUsage(BaseModel):
    """Token accounting for one call; zeroed when a backend has no metering."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class CompletionResponse(BaseModel):
    """Normalized completion result."""
    content: str = ""
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = ""


class LLMProviderConfig(BaseModel):
    """A registered completion provider.

    Attributes:
        id: Unique provider id
        name: Display name
        kind: Wire dialect used to talk to the backend
        api_key: Credential sent with each request
        api_url: Endpoint base URL (dialect default when unset)
        models: Models offered by the provider
        enabled: Disabled providers reject completion calls
        config: Extra body fields (custom dialect) or dialect options
    """
    id: str = ""
    name: str = ""
    kind: BackendKind
    api_key: Optional[str] = None
    api_url: Optional[str] = None
    models: List[str] = Field(default_factory=list)
    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)

    def public_view(self) -> Dict[str, Any]:
        """Serialized form with the credential masked."""
        data = self.model_dump(mode="json")
        if data.get("api_key"):
            data["api_key"] = "***"
        return data
