"""
Small HTTP helpers shared by the public and dashboard JSON endpoints.
"""
import json

from django.http import JsonResponse


def read_payload(request) -> dict:
    """
    Decode a JSON body, falling back to form fields. Returns None when the
    body is not valid JSON so the caller can answer 400.
    """
    if request.content_type == 'application/json':
        try:
            return json.loads(request.body or b'{}')
        except (ValueError, UnicodeDecodeError):
            return None
    return request.POST.dict()


def result_response(result) -> JsonResponse:
    """Serialise a WorkflowResult with its HTTP status."""
    return JsonResponse(result.as_dict(), status=result.http_status)


def error_response(code: str, message: str, status: int) -> JsonResponse:
    return JsonResponse({'success': False, 'code': code, 'message': message}, status=status)
