"""URL configuration for the Agency Sales Dashboard project."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("agency_sales.urls")),
]
