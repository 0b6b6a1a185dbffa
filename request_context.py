from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import parse_qsl, unquote

from fastapi import Request
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from errors import MissingParametersError, ValidationError

API_PREFIX = "/api/"
BODY_METHODS = {"POST", "PUT", "DELETE"}

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def is_blank(value: Any) -> bool:
    """A parameter counts as missing when absent, null or empty; 0 is a value."""
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def path_segments(path: str) -> List[str]:
    position = path.find(API_PREFIX)
    if position == -1:
        return []
    tail = path[position + len(API_PREFIX):]
    return [unquote(segment) for segment in tail.split("/") if segment]


class RequestContext:
    def __init__(self, method: str, segments: List[str], params: Dict[str, Any]):
        self.method = method.upper()
        self.segments = segments
        self.params = params

    @property
    def resource(self) -> str:
        return self.segments[0] if self.segments else ""

    @property
    def path(self) -> str:
        return "/".join(self.segments)

    def get(self, name: str, default: Any = None) -> Any:
        value = self.params.get(name)
        return default if value is None else value

    def has(self, name: str) -> bool:
        return self.params.get(name) is not None

    def int_param(self, name: str) -> Optional[int]:
        value = self.params.get(name)
        if is_blank(value):
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid value for {name}")

    def parse(self, schema: Type[SchemaT], data: Optional[Dict[str, Any]] = None) -> SchemaT:
        """Check the schema's required fields, then validate ``data`` (the merged params by default)."""
        source = self.params if data is None else data
        required = [name for name, field in schema.model_fields.items() if field.is_required()]
        missing = [name for name in required if is_blank(source.get(name))]
        if missing:
            raise MissingParametersError(missing)

        # Blank optional values are treated as not supplied
        cleaned = {
            name: value
            for name, value in source.items()
            if name in schema.model_fields and not is_blank(value)
        }
        try:
            return schema.model_validate(cleaned)
        except SchemaError as exc:
            fields = sorted({str(err["loc"][0]) for err in exc.errors() if err["loc"]})
            raise ValidationError("Invalid parameters: " + ", ".join(fields))


def _parse_body(raw: bytes, content_type: str) -> Dict[str, Any]:
    if not raw:
        return {}
    if "application/json" in content_type:
        try:
            data = json.loads(raw)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(raw.decode("utf-8", errors="ignore"), keep_blank_values=True))
    return {}


async def get_request_context(request: Request) -> RequestContext:
    params: Dict[str, Any] = dict(request.query_params)
    if request.method.upper() in BODY_METHODS:
        body = await request.body()
        params.update(_parse_body(body, request.headers.get("content-type", "")))
    return RequestContext(request.method, path_segments(request.url.path), params)
