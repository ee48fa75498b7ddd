"""URL configuration.

Only the admin is routed here; the upload engine has no HTTP surface
of its own.
"""

from django.contrib import admin
from django.urls import path

urlpatterns = [
    path('admin/', admin.site.urls),
]
