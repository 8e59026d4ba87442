"""
SMS dispatch request/result models.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional


class SmsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_numbers: List[str] = Field(default_factory=list, alias="phoneNumbers")
    message: str = ""


class RecipientResult(BaseModel):
    """Outcome of one send attempt; success carries the provider id, failure the error."""
    phone_number: str
    success: bool
    provider_message_id: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None


class DispatchResult(BaseModel):
    sent_count: int = 0
    failed_count: int = 0
    results: List[RecipientResult] = Field(default_factory=list)

    @property
    def errors(self) -> List[RecipientResult]:
        return [r for r in self.results if not r.success]
