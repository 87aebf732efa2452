from pydantic import BaseModel, EmailStr


class ConnectAccountRequest(BaseModel):
    provider_id: int
    email: EmailStr | None = None
    name: str | None = None


class ConnectAccountResponse(BaseModel):
    account_id: str
    existing: bool


class AccountLinkRequest(BaseModel):
    provider_id: int


class AccountLinkResponse(BaseModel):
    url: str


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str
    handled: bool
    warnings: list[str] = []
