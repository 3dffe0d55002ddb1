"""
Public booking-request URLs.

  /booking-requests/public/<token>/   Public link: status (GET) / submit (POST)
  /booking-requests/approve/          Email link: approve (?token=)
  /booking-requests/reject/           Email link: reason form + reject (?token=)
"""
from django.urls import path
from . import views

app_name = 'bookings'

urlpatterns = [
    path('public/<str:token>/',  views.public_submit,  name='public_submit'),
    path('approve/',             views.approve,        name='approve'),
    path('reject/',              views.reject,         name='reject'),
]
