"""
Public booking-request endpoints.

  /booking-requests/public/<token>/   GET: link status   POST: submit (JSON)
  /booking-requests/approve/?token=   email link: approve
  /booking-requests/reject/?token=    email link: reason form (GET), reject (POST)

Any token failure answers with the same generic message; the specific
reason is only logged by the workflow.
"""
import logging

from django.http import JsonResponse
from django.shortcuts import render
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_http_methods

from apps.core.http import error_response, read_payload, result_response

from .exceptions import GENERIC_LINK_ERROR
from .tokens import APPROVE, REJECT
from .workflow import get_workflow

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Public link submission
# ─────────────────────────────────────────────────────────────────────────────

@csrf_exempt
@require_http_methods(['GET', 'POST'])
def public_submit(request, token):
    workflow = get_workflow()

    if request.method == 'GET':
        result = workflow.check_public_link(token)
        if not result.success:
            return JsonResponse({'valid': False, 'message': GENERIC_LINK_ERROR}, status=result.http_status)
        return JsonResponse({'valid': True})

    payload = read_payload(request)
    if payload is None:
        return error_response('validation_error', 'Request body must be valid JSON.', 400)

    return result_response(workflow.submit_public(token, payload))


# ─────────────────────────────────────────────────────────────────────────────
# Email decision links
# ─────────────────────────────────────────────────────────────────────────────

def _decision_page(request, result, action):
    """Result page for an approve/reject link click."""
    if result.success:
        outcome = 'approved' if action == APPROVE else 'rejected'
    elif result.code == 'already_resolved':
        outcome = 'already_processed'
    else:
        outcome = 'error'

    context = {
        'outcome': outcome,
        'action': action,
        'message': result.message if outcome != 'error' else GENERIC_LINK_ERROR,
        'code': result.code,
        'booking_request': result.booking_request,
        'needs_resolution': bool(result.conflicts),
    }
    return render(request, 'bookings/decision_result.html', context, status=result.http_status)


@require_GET
def approve(request):
    result = get_workflow().redeem_approval(request.GET.get('token', ''), expected_action=APPROVE)
    return _decision_page(request, result, APPROVE)


@csrf_exempt
@require_http_methods(['GET', 'POST'])
def reject(request):
    """
    GET shows the reason form when the request can still be rejected;
    POST (token + reason) performs the rejection.
    """
    workflow = get_workflow()

    if request.method == 'GET':
        token = request.GET.get('token', '')
        result = workflow.preview_decision(token, REJECT)
        if not result.success:
            return _decision_page(request, result, REJECT)
        return render(request, 'bookings/reject_form.html', {
            'token': token,
            'booking_request': result.booking_request,
        })

    token = request.POST.get('token', '')
    reason = request.POST.get('reason', '').strip()[:2000]
    result = workflow.redeem_approval(token, expected_action=REJECT, reason=reason)
    return _decision_page(request, result, REJECT)
