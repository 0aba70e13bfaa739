from typing import Any, Dict, Optional
import logging

from terminology_api.exceptions import InvalidRequestError, build_issue, build_operation_outcome
from terminology_api.request import ExpansionRequest

logger = logging.getLogger(__name__)

LIST_PARAMETERS = {
    "designation",
    "property",
    "exclude-system",
    "system-version",
    "check-system-version",
    "force-system-version",
    "tx-resource",
    "default-valueset-version",
}

# Parameters whose values are JSON objects (Coding, CodeableConcept, resources)
COMPLEX_PARAMETERS = {"tx-resource", "valueSet", "coding", "codeableConcept"}


def parameter_value(param: Dict) -> Any:
    """Value of a Parameters entry, whichever value[x] (or resource) it carries."""
    for key, value in param.items():
        if key.startswith("value"):
            return value
    return param.get("resource")


def collect_parameters(request) -> Dict[str, Any]:
    """
    Query string and, for POST, the Parameters body merged into one dict.
    Repeatable parameters are lists; everything else keeps its last value.
    """
    params: Dict[str, Any] = {}

    for name in request.query_params:
        values = request.query_params.getlist(name)
        params[name] = list(values) if name in LIST_PARAMETERS else values[-1]

    if request.method == "POST":
        data = request.data or {}
        if not isinstance(data, dict):
            raise InvalidRequestError("Request body must be a Parameters resource")
        if data.get("resourceType") not in (None, "Parameters"):
            raise InvalidRequestError("Request must be a Parameters resource")

        for param in data.get("parameter", []):
            if not isinstance(param, dict):
                raise InvalidRequestError("Parameters.parameter entries must be objects")
            name = param.get("name")
            value = parameter_value(param)
            if name in LIST_PARAMETERS:
                params.setdefault(name, []).append(value)
            else:
                params[name] = value

    check_complex_parameters(params)
    return params


def check_complex_parameters(params: Dict[str, Any]):
    for name in COMPLEX_PARAMETERS:
        value = params.get(name)
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item is not None and not isinstance(item, dict):
                raise InvalidRequestError(f"Parameter '{name}' must be a JSON object, got: {item}")


def parse_bool(params: Dict, name: str) -> Optional[bool]:
    value = params.get(name)
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "false"):
        return text == "true"
    raise InvalidRequestError(f"Invalid boolean value for parameter '{name}': {value}")


def parse_int(params: Dict, name: str) -> Optional[int]:
    value = params.get(name)
    if value is None or isinstance(value, int) and not isinstance(value, bool):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        raise InvalidRequestError(f"Invalid integer value for parameter '{name}': {value}")


def accept_language(request) -> Optional[str]:
    return request.META.get("HTTP_ACCEPT_LANGUAGE")


def build_expansion_request(request, resource_id: Optional[str] = None) -> ExpansionRequest:
    params = collect_parameters(request)
    return ExpansionRequest(
        id=resource_id,
        url=params.get("url"),
        value_set_version=params.get("valueSetVersion"),
        value_set=params.get("valueSet"),
        filter=params.get("filter"),
        date=params.get("date"),
        offset=parse_int(params, "offset"),
        count=parse_int(params, "count"),
        include_designations=parse_bool(params, "includeDesignations"),
        designations=params.get("designation", []),
        include_definition=parse_bool(params, "includeDefinition"),
        active_only=parse_bool(params, "activeOnly"),
        exclude_nested=parse_bool(params, "excludeNested"),
        exclude_not_for_ui=parse_bool(params, "excludeNotForUI"),
        display_language=params.get("displayLanguage"),
        accept_language=accept_language(request),
        exclude_system=params.get("exclude-system", []),
        system_version=params.get("system-version", []),
        check_system_version=params.get("check-system-version", []),
        force_system_version=params.get("force-system-version", []),
        properties=params.get("property", []),
        default_valueset_versions=params.get("default-valueset-version", []),
        tx_resources=params.get("tx-resource", []),
        http_method=request.method,
    )


def internal_error_outcome(error: Exception) -> Dict:
    return build_operation_outcome([
        build_issue("error", "exception", f"Internal server error: {str(error)}")
    ])
