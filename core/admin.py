"""
Core — Django Admin Configuration

Read-only viewer for the configuration audit trail (balance opening,
threshold edits, activation). Stock quantities are audited by the
movement ledger itself and never appear here.

@file core/admin.py
"""

from django.contrib import admin
from django.utils.translation import gettext_lazy as _

from core.models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):

    list_display = ('timestamp', 'action', 'model_name', 'object_id', 'actor_display', 'changed_fields')
    list_filter = ('action', 'model_name')
    search_fields = ('object_id', 'actor_id')
    readonly_fields = (
        'id', 'actor_id', 'action', 'model_name', 'object_id',
        'old_values', 'new_values', 'timestamp',
    )
    date_hierarchy = 'timestamp'
    show_full_result_count = False
    list_per_page = 50

    fieldsets = (
        (None, {'fields': ('id', 'action', 'timestamp', 'actor_id')}),
        (_('Target'), {'fields': ('model_name', 'object_id')}),
        (_('Values'), {'fields': ('old_values', 'new_values')}),
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.display(description=_('Actor'), ordering='actor_id')
    def actor_display(self, obj):
        return obj.actor_id or _('system')

    @admin.display(description=_('Changed'))
    def changed_fields(self, obj):
        old = obj.old_values or {}
        new = obj.new_values or {}
        changed = sorted(key for key in old.keys() | new.keys() if old.get(key) != new.get(key))
        return ', '.join(changed) or '-'
