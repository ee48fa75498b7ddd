"""Tests for files app admin configuration."""

import pytest
from django.contrib import admin
from django.urls import reverse

from server.apps.files.admin import FileAdmin, UserQuotaAdmin, _format_bytes
from server.apps.files.models import File, UserQuota


def test_models_are_registered():
    """Both models are managed by their admin classes."""
    assert isinstance(admin.site.get_model_admin(File), FileAdmin)
    assert isinstance(admin.site.get_model_admin(UserQuota), UserQuotaAdmin)


@pytest.mark.parametrize(('size_bytes', 'expected'), [
    (0, '0 B'),
    (1023, '1023 B'),
    (1536, '1.5 KB'),
    (5 * 1024 * 1024, '5.0 MB'),
    (10 * 1024 * 1024 * 1024, '10.0 GB'),
])
def test_format_bytes(size_bytes, expected):
    """Sizes are shown in the largest fitting unit."""
    assert _format_bytes(size_bytes) == expected


@pytest.mark.django_db
def test_file_changelist(admin_client, user):
    """The file list renders records with readable sizes."""
    File.objects.create(
        user=user,
        name='report.pdf',
        storage_path='/data/report.pdf',
        size_bytes=2500,
        thumbnail_url='http://files.test/thumb/1/thumb_a.jpg',
    )

    response = admin_client.get(reverse('admin:files_file_changelist'))

    assert response.status_code == 200
    assert 'report.pdf' in response.content.decode()
    assert '2.4 KB' in response.content.decode()


@pytest.mark.django_db
def test_file_change_page_shows_preview(admin_client, user):
    """The change page embeds the preview image."""
    record = File.objects.create(
        user=user,
        name='photo.jpg',
        storage_path='/data/photo.jpg',
        thumbnail_url='http://files.test/thumb/1/thumb_a.jpg',
    )

    response = admin_client.get(
        reverse('admin:files_file_change', args=[record.pk]),
    )

    assert response.status_code == 200
    assert 'src="http://files.test/thumb/1/thumb_a.jpg"' in response.content.decode()


@pytest.mark.django_db
def test_quota_changelist_status(admin_client, user):
    """Nearly full quotas are flagged."""
    UserQuota.objects.create(user=user, quota_bytes=1000, used_bytes=950)

    response = admin_client.get(reverse('admin:files_userquota_changelist'))

    content = response.content.decode()
    assert response.status_code == 200
    assert '95.0%' in content
    assert 'Warning' in content


@pytest.mark.django_db
def test_recalculate_selected_action(admin_client, user):
    """The admin action rebuilds usage from the records."""
    quota = UserQuota.objects.create(user=user, quota_bytes=1000, used_bytes=999)
    File.objects.create(user=user, name='a.txt', storage_path='a', size_bytes=120)

    response = admin_client.post(
        reverse('admin:files_userquota_changelist'),
        {'action': 'recalculate_selected', '_selected_action': [quota.pk]},
        follow=True,
    )

    assert response.status_code == 200
    assert 'Recalculated 1 quotas' in response.content.decode()
    quota.refresh_from_db()
    assert quota.used_bytes == 120
