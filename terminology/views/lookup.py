from rest_framework.decorators import api_view
from rest_framework.response import Response
import logging

from terminology.services import get_lookup_service
from terminology.views.params import collect_parameters, internal_error_outcome
from terminology_api.exceptions import TerminologyError

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
def lookup_view(request):
    try:
        params = collect_parameters(request)
        result = get_lookup_service().lookup(
            code=params.get("code"),
            system=params.get("system"),
            version=params.get("version"),
            coding=params.get("coding"),
            properties=params.get("property", []),
        )
        return Response(result)

    except TerminologyError as e:
        return Response(e.to_operation_outcome(), status=e.status_code)
    except Exception as e:
        logger.error(f"CodeSystem lookup error: {str(e)}", exc_info=True)
        return Response(internal_error_outcome(e), status=500)
