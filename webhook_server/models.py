from pydantic import BaseModel
from typing import Dict, Optional

class Payload(BaseModel):
    parameters: Optional[Dict[str, str]] = None

class DispatchResponse(BaseModel):
    status: str
    webhook: str
    task_id: Optional[str] = None

def parse_parameters(method: str, body: bytes) -> Dict[str, str]:
    # GET requests and empty bodies carry no parameters
    if method != "POST" or not body.strip():
        return {}
    return Payload.model_validate_json(body).parameters or {}
