from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Operation(str, Enum):
    GET_OBJECT = "get_object"
    PUT_OBJECT = "put_object"
    GET_VERSION = "get_version"


class PresignRequest(BaseModel):
    # operation is read from the raw body before authorization
    key: Optional[str] = None
    description: Optional[str] = None  # "" is present, None is absent
    password: Optional[str] = None


class UploadRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_key: str
    description: str
    uploaded_at: str
    image_url: str

    def to_item(self) -> dict:
        return self.model_dump(by_alias=True)


class UrlResponse(BaseModel):
    url: str


class VersionResponse(BaseModel):
    version: str


class EmailRequest(BaseModel):
    to: Union[str, List[str], None] = None
    subject: Optional[str] = None
    message: Optional[str] = None
    sender: Optional[str] = Field(default=None, alias="from")

    @property
    def recipients(self) -> List[str]:
        if not self.to:
            return []
        return self.to if isinstance(self.to, list) else [self.to]


class EmailResponse(BaseModel):
    message: str
    message_id: str = Field(serialization_alias="messageId")
