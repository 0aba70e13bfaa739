from typing import Dict, List, Optional

from terminology_api.constants import (
    MESSAGE_ID_EXTENSION_URL,
    MSG_MISSING_REQUIRED_PARAMETER,
    MSG_UNABLE_TO_RESOLVE_VALUE_SET,
    MSG_UNKNOWN_CODESYSTEM,
    MSG_UNKNOWN_CODESYSTEM_VERSION,
    TX_ISSUE_TYPE_SYSTEM,
)


def build_issue(severity: str, code: str, text: str, tx_issue_type: Optional[str] = None,
                message_id: Optional[str] = None, location: Optional[List[str]] = None) -> Dict:
    """
    Build a single OperationOutcome issue entry.

    Args:
        severity: fatal | error | warning | information
        code: FHIR issue type (invalid, not-found, processing, ...)
        text: Human readable message
        tx_issue_type: Optional code from the tx-issue-type system
        message_id: Optional message id, carried as an extension
        location: Optional list of locations, repeated as expressions
    """
    details = {"text": text}
    if tx_issue_type:
        details["coding"] = [{"system": TX_ISSUE_TYPE_SYSTEM, "code": tx_issue_type}]

    issue = {"severity": severity, "code": code, "details": details}
    if message_id:
        issue["extension"] = [{"url": MESSAGE_ID_EXTENSION_URL, "valueString": message_id}]
    if location:
        issue["location"] = list(location)
        issue["expression"] = list(location)
    return issue


def build_operation_outcome(issues: List[Dict]) -> Dict:
    return {"resourceType": "OperationOutcome", "issue": issues}


class TerminologyError(Exception):
    """Base class for every error the terminology engine reports to callers."""

    status_code = 500
    issue_code = "exception"
    tx_issue_type = None
    message_id = None

    def __init__(self, message: str, location: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.location = location or []

    def to_issue(self) -> Dict:
        return build_issue(
            "error",
            self.issue_code,
            self.message,
            tx_issue_type=self.tx_issue_type,
            message_id=self.message_id,
            location=self.location,
        )

    def to_operation_outcome(self) -> Dict:
        return build_operation_outcome([self.to_issue()])


class InvalidRequestError(TerminologyError):
    status_code = 400
    issue_code = "invalid"


class MissingParameterError(InvalidRequestError):
    issue_code = "required"
    message_id = MSG_MISSING_REQUIRED_PARAMETER


class InvalidFilterError(InvalidRequestError):
    tx_issue_type = "vs-invalid"


class VersionMismatchError(InvalidRequestError):
    tx_issue_type = "vs-invalid"


class NotFoundError(TerminologyError):
    status_code = 404
    issue_code = "not-found"
    tx_issue_type = "not-found"


class ValueSetNotFoundError(NotFoundError):
    message_id = MSG_UNABLE_TO_RESOLVE_VALUE_SET


class CodeSystemNotFoundError(NotFoundError):
    message_id = MSG_UNKNOWN_CODESYSTEM

    def __init__(self, url: str, message: Optional[str] = None):
        super().__init__(message or f"A definition for CodeSystem '{url}' could not be found")
        self.url = url


class CodeSystemVersionNotFoundError(CodeSystemNotFoundError):
    message_id = MSG_UNKNOWN_CODESYSTEM_VERSION

    def __init__(self, url: str, requested_version: str, available_versions: List[str]):
        available = ", ".join(available_versions) if available_versions else "none"
        super().__init__(
            url,
            f"A definition for CodeSystem '{url}' version '{requested_version}' could not be found, "
            f"so the code cannot be validated. Valid versions: {available}",
        )
        self.requested_version = requested_version
        self.available_versions = available_versions


class ConceptNotFoundError(NotFoundError):
    pass


class CyclicReferenceError(TerminologyError):
    status_code = 422
    issue_code = "processing"


class StoreError(TerminologyError):
    """Unexpected resource store failure, wrapped with what was being resolved."""

    status_code = 500
    issue_code = "exception"
