from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator


class HttpConnectorConfig(BaseModel):
    type: Literal["http"] = "http"
    method: Literal["GET", "POST", "PUT", "PATCH"] = "POST"
    path: str = ""


class LangGraphConnectorConfig(BaseModel):
    type: Literal["langgraph"] = "langgraph"
    assistant_id: str = "default"
    configurable: dict[str, Any] | None = None
    # Use /threads/{thread_id}/runs/wait and send only unseen messages
    threaded: bool = False


ConnectorConfig = Annotated[
    HttpConnectorConfig | LangGraphConnectorConfig,
    Field(discriminator="type"),
]


class Connector(BaseModel):
    id: str
    name: str = Field(..., min_length=1, max_length=255)
    type: Literal["http", "langgraph"]
    base_url: str = Field(..., min_length=1)
    headers: dict[str, str] = Field(default_factory=dict)
    auth_type: Literal["none", "api-key", "bearer", "basic"] = "none"
    auth_value: str | None = None
    config: ConnectorConfig | None = None

    @model_validator(mode="before")
    @classmethod
    def _tag_config(cls, data: Any) -> Any:
        # Stored configs may omit the tag; it always follows the connector type.
        if isinstance(data, dict) and data.get("type"):
            config = data.get("config")
            if config is None:
                data = {**data, "config": {"type": data["type"]}}
            elif isinstance(config, dict) and "type" not in config:
                data = {**data, "config": {**config, "type": data["type"]}}
        return data

    @model_validator(mode="after")
    def _check_config_matches_type(self) -> "Connector":
        if self.config is not None and self.config.type != self.type:
            raise ValueError(
                f"Connector config type '{self.config.type}' does not match connector type '{self.type}'"
            )
        return self

    @property
    def url_base(self) -> str:
        return self.base_url.rstrip("/")
