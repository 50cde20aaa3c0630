"""
URL configuration for the credits app.

Routes:
    - GET  /                                   - Caller's credit account
    - GET  /transactions/                      - Ledger history
    - GET  /costs/                             - Action cost table
    - POST /quote/                             - Gate decision for an action
    - POST /admin/accounts/<uuid>/grant/       - Grant or adjust (staff)
    - POST /admin/accounts/<uuid>/promote/     - Toggle admin bypass (staff)
    - GET  /admin/stats/                       - Usage statistics (staff)

All routes are prefixed with /api/v1/credits/ when included in the main URLconf.
"""

from django.urls import path

from credits import views

app_name = "credits"

urlpatterns = [
    path("", views.CreditAccountView.as_view(), name="account"),
    path("transactions/", views.CreditTransactionListView.as_view(), name="transactions"),
    path("costs/", views.CostTableView.as_view(), name="costs"),
    path("quote/", views.QuoteView.as_view(), name="quote"),
    # Admin console
    path(
        "admin/accounts/<uuid:account_id>/grant/",
        views.AdminGrantView.as_view(),
        name="admin_grant",
    ),
    path(
        "admin/accounts/<uuid:account_id>/promote/",
        views.AdminPromoteView.as_view(),
        name="admin_promote",
    ),
    path("admin/stats/", views.AdminStatsView.as_view(), name="admin_stats"),
]
