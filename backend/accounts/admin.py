from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import Membership, User


@admin.register(User)
class DispatchUserAdmin(UserAdmin):
    fieldsets = UserAdmin.fieldsets + (
        ("Organization", {"fields": ("display_name", "active_organization")}),
    )


@admin.register(Membership)
class MembershipAdmin(admin.ModelAdmin):
    list_display = ("user", "organization", "role", "is_active", "driver")
    list_filter = ("role", "is_active")
    search_fields = ("user__email", "organization__name")
