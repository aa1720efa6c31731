from pydantic import BaseModel, Field


class Persona(BaseModel):
    id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    system_prompt: str | None = None
    # Sent with every connector request for runs using this persona
    headers: dict[str, str] = Field(default_factory=dict)
