"""URL configuration: only the admin console is exposed over HTTP."""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path("admin/", admin.site.urls),
]
