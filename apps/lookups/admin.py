from django.contrib import admin
from .models import Particular, ImplementingOffice, Category


class LookupCodeAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_active', 'usage_count', 'updated_at']
    list_filter = ['is_active']
    search_fields = ['code', 'name']
    # usage_count is maintained by the budget services
    readonly_fields = ['usage_count', 'created_at', 'updated_at']


admin.site.register(Particular, LookupCodeAdmin)
admin.site.register(Category, LookupCodeAdmin)


@admin.register(ImplementingOffice)
class ImplementingOfficeAdmin(LookupCodeAdmin):
    list_display = ['code', 'name', 'full_name', 'is_active', 'usage_count', 'updated_at']
