from django.urls import path
from . import views

app_name = 'cron'

urlpatterns = [
    path('sweep/', views.sweep, name='sweep'),
]
