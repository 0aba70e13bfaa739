from typing import Dict, List, Optional
import logging

from terminology_api.classes import CodeSystem
from terminology_api.constants import (
    MSG_INVALID_DISPLAY,
    MSG_NONE_OF_CODES_IN_VALUE_SET,
    MSG_UNKNOWN_CODE_IN_VERSION,
)
from terminology_api.exceptions import (
    CodeSystemNotFoundError,
    MissingParameterError,
    NotFoundError,
    build_issue,
    build_operation_outcome,
)
from terminology_api.expansion.component_builder import ConceptComponentBuilder
from terminology_api.expansion.service import ValueSetExpansionService
from terminology_api.filters import ConceptFilter
from terminology_api.finder import ResourceFinder
from terminology_api.request import ExpansionRequest

logger = logging.getLogger(__name__)


def build_validation_response(result: bool, message: Optional[str] = None, display: Optional[str] = None,
                              code: Optional[str] = None, system: Optional[str] = None,
                              version: Optional[str] = None, issues: Optional[List[Dict]] = None) -> Dict:
    """
    Build FHIR Parameters response for validation
    """
    parameters = [{"name": "result", "valueBoolean": result}]
    if message:
        parameters.append({"name": "message", "valueString": message})
    if display:
        parameters.append({"name": "display", "valueString": display})
    if code:
        parameters.append({"name": "code", "valueCode": code})
    if system:
        parameters.append({"name": "system", "valueUri": system})
    if version:
        parameters.append({"name": "version", "valueString": version})
    if issues:
        parameters.append({"name": "issues", "resource": build_operation_outcome(issues)})
    return {"resourceType": "Parameters", "parameter": parameters}


def _result_of(response: Dict) -> bool:
    return any(p.get("name") == "result" and p.get("valueBoolean") for p in response["parameter"])


class ValidateCodeService:
    """$validate-code against a CodeSystem, or against a ValueSet via its expansion."""

    def __init__(self, resource_finder: ResourceFinder, expansion_service: ValueSetExpansionService,
                 concept_filter: Optional[ConceptFilter] = None):
        self.resource_finder = resource_finder
        self.expansion_service = expansion_service
        self.component_builder = ConceptComponentBuilder(concept_filter or ConceptFilter())

    def validate_code(self, code: Optional[str] = None, system: Optional[str] = None,
                      version: Optional[str] = None, display: Optional[str] = None,
                      coding: Optional[Dict] = None, codeable_concept: Optional[Dict] = None,
                      resource_id: Optional[str] = None, url: Optional[str] = None,
                      value_set: Optional[Dict] = None, value_set_version: Optional[str] = None,
                      display_language: Optional[str] = None) -> Dict:
        if codeable_concept:
            codings = list(codeable_concept.get("coding", []))
        elif coding:
            codings = [coding]
        else:
            codings = [{"code": code, "system": system, "version": version, "display": display}]

        codings = [c for c in codings if c.get("code")]
        if not codings:
            raise MissingParameterError("Code parameter is required")

        validating_value_set = bool(url or value_set)
        if not validating_value_set and not resource_id and not any(c.get("system") for c in codings):
            raise MissingParameterError("Either 'system' or a CodeSystem id must be provided")

        logger.info(
            f"Validate-code request - Codes: {[c.get('code') for c in codings]}, "
            f"System: {codings[0].get('system')}, ValueSet: {url or ('inline' if value_set else None)}"
        )

        members = None
        if validating_value_set:
            members = self.value_set_members(url, value_set, value_set_version, display_language)

        responses = []
        for candidate in codings:
            if members is not None:
                response = self.validate_membership(candidate, members, url, display_language)
            else:
                response = self.validate_in_code_system(
                    candidate.get("code"),
                    candidate.get("system"),
                    candidate.get("version") or version,
                    candidate.get("display"),
                    resource_id,
                    display_language,
                )
            if _result_of(response):
                return response
            responses.append(response)
        return responses[0]

    def value_set_members(self, url: Optional[str], value_set: Optional[Dict], value_set_version: Optional[str],
                          display_language: Optional[str]) -> Dict[str, Dict]:
        request = ExpansionRequest(
            url=url,
            value_set=value_set,
            value_set_version=value_set_version,
            display_language=display_language,
        )
        expansion = self.expansion_service.expand(request)["expansion"]

        members = {}
        stack = list(expansion.get("contains", []))
        while stack:
            entry = stack.pop()
            members.setdefault(f"{entry.get('system')}|{entry.get('code')}", entry)
            stack.extend(entry.get("contains", []))
        return members

    def validate_membership(self, candidate: Dict, members: Dict[str, Dict], url: Optional[str],
                            display_language: Optional[str]) -> Dict:
        code = candidate.get("code")
        system = candidate.get("system")
        if not system:
            system = next((m.get("system") for m in members.values() if m.get("code") == code), None)

        if f"{system}|{code}" not in members:
            message = f"The provided code '{system}#{code}' was not found in the value set '{url}'"
            issue = build_issue(
                "error", "code-invalid", message,
                tx_issue_type="not-in-vs", message_id=MSG_NONE_OF_CODES_IN_VALUE_SET, location=["Coding.code"],
            )
            return build_validation_response(False, message=message, code=code, system=system, issues=[issue])

        return self.validate_in_code_system(
            code, system, candidate.get("version"), candidate.get("display"), None, display_language
        )

    def validate_in_code_system(self, code: str, system: Optional[str], version: Optional[str],
                                display: Optional[str], resource_id: Optional[str],
                                display_language: Optional[str]) -> Dict:
        try:
            if resource_id:
                code_system = self.resource_finder.get_code_system(resource_id, version)
            else:
                code_system = self.resource_finder.find_code_system(system, version)
        except CodeSystemNotFoundError as e:
            return build_validation_response(
                False, message=e.message, code=code, system=system, version=version, issues=[e.to_issue()],
            )
        except NotFoundError as e:
            return build_validation_response(False, message=e.message, code=code, issues=[e.to_issue()])

        concept = code_system.find_concept(code)
        if concept is None:
            return self.unknown_code(code_system, code)

        valid_display = concept.display
        if display_language:
            valid_display, _ = self.component_builder.negotiate_display(concept, code_system, display_language)

        if display and display not in (concept.display, valid_display):
            message = (
                f"Wrong Display Name '{display}' for {code_system.url}#{code}. "
                f"Valid display is '{valid_display or concept.display}'"
            )
            issue = build_issue(
                "error", "invalid", message,
                tx_issue_type="invalid-display", message_id=MSG_INVALID_DISPLAY, location=["Coding.display"],
            )
            return build_validation_response(
                False, message=message, display=valid_display, code=code,
                system=code_system.url, version=code_system.version, issues=[issue],
            )

        return build_validation_response(
            True, display=valid_display, code=code, system=code_system.url, version=code_system.version,
        )

    @staticmethod
    def unknown_code(code_system: CodeSystem, code: str) -> Dict:
        if code_system.version:
            message = f"Unknown code '{code}' in the CodeSystem '{code_system.url}' version '{code_system.version}'"
        else:
            message = f"Unknown code '{code}' in the CodeSystem '{code_system.url}'"
        issue = build_issue(
            "error", "code-invalid", message,
            tx_issue_type="invalid-code", message_id=MSG_UNKNOWN_CODE_IN_VERSION, location=["Coding.code"],
        )
        return build_validation_response(
            False, message=message, code=code, system=code_system.url, version=code_system.version, issues=[issue],
        )
