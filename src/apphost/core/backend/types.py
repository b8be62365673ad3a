from __future__ import annotations

from typing import Any, Literal, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

ChannelType = Literal["sms", "whatsapp", "email"]


class CommunicationChannel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str = ""
    type: ChannelType = "sms"
    created_at: str = Field(default="", alias="createdAt")
    metadata: dict[str, Any] | None = None


class Workplace(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str = ""
    created_at: str = Field(default="", alias="createdAt")
    metadata: dict[str, Any] | None = None


class Message(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    channel_id: str = Field(default="", alias="channelId")
    body: str = ""
    sent_at: str = Field(default="", alias="sentAt")
    metadata: dict[str, Any] | None = None


@runtime_checkable
class CommunicationService(Protocol):
    """Implemented by apps that bridge the platform's messaging API.

    Methods may be sync or async and should return a JSON-able mapping, or
    ``None`` when they have nothing to report.
    """

    def create_communication_channel(self, channel: CommunicationChannel) -> Any: ...

    def update_communication_channel(self, channel: CommunicationChannel) -> Any: ...

    def delete_communication_channel(self, channel_id: str) -> Any: ...

    def get_communication_channel(self, channel_id: str) -> Any: ...

    def get_communication_channels(self) -> Any: ...

    def send_message(self, message: Message, communication_channel: CommunicationChannel) -> Any: ...

    def get_workplace(self, workplace_id: str) -> Any: ...

    def list_workplaces(self) -> Any: ...
