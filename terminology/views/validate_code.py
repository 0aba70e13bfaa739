from rest_framework.decorators import api_view
from rest_framework.response import Response
import logging

from terminology.services import get_validate_service
from terminology.views.params import accept_language, collect_parameters, internal_error_outcome
from terminology_api.exceptions import TerminologyError
from terminology_api.language import first_language_tag

logger = logging.getLogger(__name__)


def _display_language(request, params):
    return params.get("displayLanguage") or first_language_tag(accept_language(request))


@api_view(['GET', 'POST'])
def codesystem_validate_code_view(request, resource_id=None):
    """
    FHIR CodeSystem $validate-code operation

    Here 'url' names the CodeSystem, so it stands in for 'system'.
    """
    try:
        params = collect_parameters(request)
        result = get_validate_service().validate_code(
            code=params.get("code"),
            system=params.get("system") or params.get("url"),
            version=params.get("version"),
            display=params.get("display"),
            coding=params.get("coding"),
            codeable_concept=params.get("codeableConcept"),
            resource_id=resource_id,
            display_language=_display_language(request, params),
        )
        return Response(result)

    except TerminologyError as e:
        return Response(e.to_operation_outcome(), status=e.status_code)
    except Exception as e:
        logger.error(f"CodeSystem validate-code error: {str(e)}", exc_info=True)
        return Response(internal_error_outcome(e), status=500)


@api_view(['GET', 'POST'])
def valueset_validate_code_view(request):
    """
    FHIR ValueSet $validate-code operation
    """
    try:
        params = collect_parameters(request)
        result = get_validate_service().validate_code(
            code=params.get("code"),
            system=params.get("system"),
            version=params.get("systemVersion") or params.get("version"),
            display=params.get("display"),
            coding=params.get("coding"),
            codeable_concept=params.get("codeableConcept"),
            url=params.get("url"),
            value_set=params.get("valueSet"),
            value_set_version=params.get("valueSetVersion"),
            display_language=_display_language(request, params),
        )
        return Response(result)

    except TerminologyError as e:
        return Response(e.to_operation_outcome(), status=e.status_code)
    except Exception as e:
        logger.error(f"ValueSet validate-code error: {str(e)}", exc_info=True)
        return Response(internal_error_outcome(e), status=500)
