"""
URL configuration for the f1_economy project.

JSON read endpoints for lock, team and asset state, plus the admin.
"""
from django.contrib import admin
from django.urls import path

from economy.views import asset_list, lockout_status, team_detail

urlpatterns = [
    path('lockout/', lockout_status, name='lockout_status'),
    path('teams/<str:team_id>/', team_detail, name='team_detail'),
    path('assets/', asset_list, name='asset_list'),
    path('admin/', admin.site.urls),
]
