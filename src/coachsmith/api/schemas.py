"""Request and response bodies of the coach endpoint."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictBool, StrictStr, ValidationError

from coachsmith.agents.models import CoachReply
from coachsmith.errors import BadRequest

NO_SQL = "No SQL generated"


class CoachRequest(BaseModel):
    message: StrictStr = Field(min_length=1)
    stream: StrictBool = True
    pageContext: Optional[str] = None
    pageData: Any = None


class DataInfoPayload(BaseModel):
    sqlQuery: str
    resultCount: int
    hasData: bool
    sampleData: Optional[List[Dict[str, Any]]] = None


def parse_coach_request(body: Any) -> CoachRequest:
    """Validate a decoded JSON body, mapping failures onto 400 errors."""
    if not isinstance(body, dict):
        raise BadRequest("Message is required")
    try:
        return CoachRequest.model_validate(body)
    except ValidationError as e:
        if any(err["loc"] and err["loc"][0] == "message" for err in e.errors()):
            raise BadRequest("Message is required") from e
        raise BadRequest(f"Invalid request body: {e.error_count()} validation error(s)") from e


def reply_payload(reply: CoachReply, include_debug: bool = False) -> Dict[str, Any]:
    """Wire form of a buffered or cached reply."""
    payload: Dict[str, Any] = {"reply": reply.reply, "cached": reply.cached}
    if reply.data_info is not None:
        info = reply.data_info
        payload["dataInfo"] = DataInfoPayload(
            sqlQuery=info.sql_query or NO_SQL,
            resultCount=info.result_count,
            hasData=info.has_data,
            sampleData=info.sample_data,
        ).model_dump()
    if include_debug and reply.debug:
        payload["debug"] = reply.debug
    return payload
