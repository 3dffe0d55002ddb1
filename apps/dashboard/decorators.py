"""
Dashboard authentication decorators.

actor_required resolves the signed-in user to an Actor and hands it to the
view as `request.actor`. Anonymous JSON callers get 401; browsers are sent
to the admin login page with ?next= preserved.
"""
from functools import wraps

from django.conf import settings
from django.shortcuts import redirect

from apps.accounts.roles import get_current_actor
from apps.core.http import error_response


def _wants_json(request) -> bool:
    accept = request.headers.get('Accept', '')
    return request.content_type == 'application/json' or 'application/json' in accept or request.method != 'GET'


def actor_required(view_func):
    """Require an authenticated user with a resolvable role."""
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        actor = get_current_actor(request)
        if actor is None:
            if _wants_json(request):
                return error_response('unauthenticated', 'Sign in to continue.', 401)
            return redirect(f'{settings.LOGIN_URL}?next={request.path}')
        request.actor = actor
        return view_func(request, *args, **kwargs)
    return wrapper
