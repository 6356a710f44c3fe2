"""Problem Details body returned by every error response."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Violation(BaseModel):
    """One failed field of a rejected request."""

    path: str = Field(..., description="Dotted location of the invalid field")
    message: str = Field(..., description="Why the value was rejected")


class Problem(BaseModel):
    """RFC 9457 Problem Details with the booking API's extension members."""

    model_config = ConfigDict(extra="allow")

    type: str = Field("about:blank", description="Problem type URI")
    title: str = Field(..., description="Short summary of the problem type")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Explanation of this occurrence")
    instance: Optional[str] = Field(None, description="Request path that failed")
    code: Optional[str] = Field(None, description="Machine-readable error code, e.g. NOT_CANCELLABLE")
    retryable: Optional[bool] = Field(None, description="False when repeating the request cannot succeed")
    current_status: Optional[str] = Field(None, description="Booking status at the time of a rejected transition")
    target_status: Optional[str] = Field(None, description="Status the rejected transition aimed for")
    violations: Optional[list[Violation]] = Field(None, description="Field errors of a 422 response")
