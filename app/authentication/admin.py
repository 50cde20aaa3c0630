"""
User admin.

The credit account is shown inline and read-only. Balances only move
through CreditService (see the credits admin actions).
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User
from credits.models import CreditAccount


class CreditAccountInline(admin.StackedInline):
    model = CreditAccount
    can_delete = False
    extra = 0
    fields = readonly_fields = ("tier", "tier_status", "balance", "is_admin", "period_end")

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ("email", "name", "is_active", "is_staff", "date_joined")
    list_filter = ("is_active", "is_staff", "email_verified")
    search_fields = ("email", "name")
    ordering = ("-date_joined",)
    readonly_fields = ("date_joined", "last_login")
    inlines = [CreditAccountInline]

    fieldsets = (
        (None, {"fields": ("email", "name", "password", "email_verified")}),
        ("Access", {"fields": ("is_active", "is_staff", "is_superuser", "groups", "user_permissions")}),
        ("Dates", {"fields": ("date_joined", "last_login")}),
    )
    add_fieldsets = (
        (None, {"classes": ("wide",), "fields": ("email", "password1", "password2")}),
    )
