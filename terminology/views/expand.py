from rest_framework.decorators import api_view
from rest_framework.response import Response
import logging

from terminology.services import get_expansion_service
from terminology.views.params import build_expansion_request, internal_error_outcome
from terminology_api.exceptions import TerminologyError

logger = logging.getLogger(__name__)


@api_view(['GET', 'POST'])
def expand_view(request, resource_id=None):
    """
    FHIR ValueSet $expand operation

    The source ValueSet comes from the route id, the 'url' parameter,
    an inline 'valueSet' resource or a matching tx-resource.
    """
    try:
        expansion_request = build_expansion_request(request, resource_id)

        logger.info(
            f"Expand request - Id: {resource_id}, URL: {expansion_request.url}, "
            f"Filter: '{expansion_request.filter or ''}', Count: {expansion_request.count}, "
            f"Offset: {expansion_request.offset}"
        )

        result = get_expansion_service().expand(expansion_request)
        return Response(result)

    except TerminologyError as e:
        logger.info(f"Expand request rejected: {e.message}")
        return Response(e.to_operation_outcome(), status=e.status_code)
    except Exception as e:
        logger.error(f"ValueSet expand error: {str(e)}", exc_info=True)
        return Response(internal_error_outcome(e), status=500)
