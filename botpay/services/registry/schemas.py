"""Bot registry request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class BotCredentials(BaseModel):
    """Resolved caller identity handed to the payment core."""

    model_config = ConfigDict(frozen=True)

    bot_id: str
    name: str
    token: str
    api_key: str
    webhook_secret: str
    allowed_currencies: tuple[str, ...]

    def allows(self, currency: str) -> bool:
        return currency.upper() in self.allowed_currencies


class GatewayCredentials(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(alias="apiKey", min_length=1)
    webhook_secret: str = Field(alias="webhookSecret", min_length=1)


class BotRegisterRequest(BaseModel):
    """Payload accepted by `POST /api/bots/register`."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    token: str = Field(min_length=1)
    allowed_currencies: list[str] | None = Field(default=None, alias="allowedCurrencies")
    use_gateway: GatewayCredentials = Field(alias="useGateway")

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be blank")
        return value


class BotSummary(BaseModel):
    """Public view of a bot; never carries tokens or secrets."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    bot_id: str
    name: str
    allowed_currencies: list[str]
    is_active: bool
    registered_by: str
    created_at: datetime | None = None
    last_used_at: datetime | None = None
