"""
Root URLconf.

API routes live under /api/v1/ (auth, credits, billing); see each app's
urls.py. ReDoc is served at / from the schema at /schema/.
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

admin.site.site_header = admin.site.site_title = "Credits Admin"
admin.site.index_title = "Accounts, ledger and billing events"

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path(
        "api/v1/",
        include(
            [
                path(f"{app}/", include(f"{module}.urls"))
                for app, module in (("auth", "authentication"), ("credits", "credits"), ("billing", "billing"))
            ]
        ),
    ),
]
