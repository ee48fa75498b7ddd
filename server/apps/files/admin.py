"""Django admin configuration for files app."""

from django.contrib import admin
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils.html import format_html

from server.apps.files.logic.quota_operations import recalculate_usage
from server.apps.files.models import File, UserQuota


def _format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < 1024:
        return f'{size_bytes} B'
    if size_bytes < 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / 1024:.1f} KB'
    if size_bytes < 1024 * 1024 * 1024:  # noqa: WPS531
        return f'{size_bytes / (1024 * 1024):.1f} MB'
    return f'{size_bytes / (1024 * 1024 * 1024):.1f} GB'


@admin.register(File)
class FileAdmin(admin.ModelAdmin[File]):
    """Admin interface for File model."""

    list_display = [
        'name',
        'user',
        'relative_path',
        'file_type',
        'size_display',
        'status',
        'created_at',
    ]

    list_filter = [
        'status',
        'file_type',
        'created_at',
    ]

    search_fields = [
        'name',
        'storage_path',
        'checksum_sha256',
        'user__username',
    ]

    readonly_fields = [
        'storage_path',
        'size_bytes',
        'mime_type',
        'checksum_sha256',
        'thumbnail_preview',
        'created_at',
        'modified_at',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('name', 'user', 'relative_path', 'status'),
        }),
        ('Storage', {
            'fields': ('storage_path', 'thumbnail_url', 'thumbnail_preview'),
        }),
        ('Metadata', {
            'fields': (
                'file_type',
                'size_bytes',
                'mime_type',
                'checksum_sha256',
            ),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'modified_at'),
        }),
    )

    def size_display(self, obj: File) -> str:
        """Display file size in human-readable format.

        Args:
            obj: File instance.

        Returns:
            Formatted size string.
        """
        return _format_bytes(obj.size_bytes)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]

    def thumbnail_preview(self, obj: File) -> str:
        """Display the derived preview inline."""
        if not obj.thumbnail_url:
            return '-'
        return format_html(
            '<img src="{url}" style="max-width: 200px; max-height: 200px;">',
            url=obj.thumbnail_url,
        )
    thumbnail_preview.short_description = 'Preview'  # type: ignore[attr-defined]

    def get_queryset(self, request: HttpRequest) -> QuerySet[File]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('user')


@admin.register(UserQuota)
class UserQuotaAdmin(admin.ModelAdmin[UserQuota]):
    """Admin interface for UserQuota model."""

    list_display = [
        'user',
        'quota_display',
        'used_display',
        'percentage_display',
        'status_display',
    ]

    search_fields = [
        'user__username',
        'user__email',
    ]

    readonly_fields = [
        'user',
        'used_bytes',
    ]

    actions = ['recalculate_selected']

    fieldsets = (
        ('User', {
            'fields': ('user',),
        }),
        ('Quota Settings', {
            'fields': ('quota_bytes',),
        }),
        ('Current Usage', {
            'fields': ('used_bytes',),
        }),
    )

    def quota_display(self, obj: UserQuota) -> str:
        """Display quota in human-readable format."""
        return _format_bytes(obj.quota_bytes)
    quota_display.short_description = 'Quota'  # type: ignore[attr-defined]

    def used_display(self, obj: UserQuota) -> str:
        """Display used bytes in human-readable format."""
        return _format_bytes(obj.used_bytes)
    used_display.short_description = 'Used'  # type: ignore[attr-defined]

    def _usage_percentage(self, obj: UserQuota) -> float:
        if obj.quota_bytes == 0:
            return 0.0
        return (obj.used_bytes / obj.quota_bytes) * 100

    def percentage_display(self, obj: UserQuota) -> str:
        """Display percentage of quota used.

        Args:
            obj: UserQuota instance.

        Returns:
            Percentage string.
        """
        return f'{self._usage_percentage(obj):.1f}%'
    percentage_display.short_description = '%'  # type: ignore[attr-defined]

    def status_display(self, obj: UserQuota) -> str:
        """Display status indicator based on usage.

        Args:
            obj: UserQuota instance.

        Returns:
            HTML formatted status indicator.
        """
        percentage = self._usage_percentage(obj)

        if percentage >= 100:
            color = '#dc3545'
            status = 'Full'
        elif percentage >= 90:
            color = '#ffc107'
            status = 'Warning'
        else:
            color = '#28a745'
            status = 'OK'

        return format_html(
            '<span style="color: {color}; font-weight: bold;">'
            '{status}</span>',
            color=color,
            status=status,
        )
    status_display.short_description = 'Status'  # type: ignore[attr-defined]

    @admin.action(description='Recalculate usage from file records')
    def recalculate_selected(
        self,
        request: HttpRequest,
        queryset: QuerySet[UserQuota],
    ) -> None:
        """Rebuild used bytes of the selected quotas."""
        for quota in queryset.select_related('user'):
            recalculate_usage(quota.user)
        self.message_user(request, f'Recalculated {queryset.count()} quotas')

    def get_queryset(self, request: HttpRequest) -> QuerySet[UserQuota]:
        """Optimize queryset with select_related.

        Args:
            request: HTTP request.

        Returns:
            Optimized QuerySet.
        """
        return super().get_queryset(request).select_related('user')
