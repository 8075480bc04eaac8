from django.contrib import admin
from .models import User


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('name', 'email', 'role', 'status', 'created_at')
    list_filter = ('role', 'status')
    search_fields = ('name', 'email')
    readonly_fields = ('password', 'last_login', 'created_at', 'updated_at')   # passwords change through the API only
    ordering = ('-created_at',)
