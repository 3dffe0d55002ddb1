from django.urls import path
from . import views

app_name = 'dashboard'

urlpatterns = [
    # ── Links & submission ────────────────────────────────────────────────
    path('links/',                  views.issue_link,      name='issue_link'),
    path('requests/',               views.submit_request,  name='submit_request'),
    path('requests/drafts/',        views.save_draft,      name='save_draft'),

    # ── Per-request actions ───────────────────────────────────────────────
    path('requests/<uuid:request_id>/edit/',       views.edit_request,       name='edit_request'),
    path('requests/<uuid:request_id>/resend/',     views.resend_request,     name='resend_request'),
    path('requests/<uuid:request_id>/cancel/',     views.cancel_request,     name='cancel_request'),
    path('requests/<uuid:request_id>/reschedule/', views.reschedule_request, name='reschedule_request'),
    path('requests/<uuid:request_id>/resolve/',    views.resolve_request,    name='resolve_request'),

    # ── Calendar ──────────────────────────────────────────────────────────
    path('calendar/',               views.calendar,        name='calendar'),
]
