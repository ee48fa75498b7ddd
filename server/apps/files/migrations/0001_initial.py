import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='File',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Display name shown to the owner', max_length=255)),
                ('storage_path', models.CharField(help_text='Physical path on disk', max_length=1024)),
                ('relative_path', models.CharField(default='/', help_text="Folder in the owner's tree, e.g. '/' or '/docs'", max_length=1024)),
                ('thumbnail_url', models.CharField(blank=True, default='', help_text='Public URL of the derived preview, empty if none', max_length=1024)),
                ('size_bytes', models.BigIntegerField(default=0, help_text='File size in bytes')),
                ('mime_type', models.CharField(blank=True, default='', max_length=255)),
                ('checksum_sha256', models.CharField(blank=True, db_index=True, default='', help_text='SHA256 hash for integrity verification', max_length=64)),
                ('file_type', models.CharField(choices=[('folder', 'Folder'), ('image', 'Image'), ('document', 'Document'), ('video', 'Video'), ('audio', 'Audio'), ('archive', 'Archive'), ('code', 'Code'), ('executable', 'Executable'), ('other', 'Other')], default='other', max_length=20)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('DELETED', 'Deleted'), ('ARCHIVED', 'Archived'), ('UPLOADING', 'Uploading')], db_index=True, default='ACTIVE', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('modified_at', models.DateTimeField(auto_now=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='files', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'verbose_name': 'File',
                'verbose_name_plural': 'Files',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'relative_path'], name='files_user_folder_idx'),
                    models.Index(fields=['user', 'status'], name='files_user_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(size_bytes__gte=0), name='files_size_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserQuota',
            fields=[
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, primary_key=True, related_name='quota', serialize=False, to=settings.AUTH_USER_MODEL)),
                ('quota_bytes', models.BigIntegerField(default=10737418240, help_text='Storage quota limit in bytes')),
                ('used_bytes', models.BigIntegerField(default=0, help_text='Currently used storage in bytes')),
            ],
            options={
                'verbose_name': 'User Quota',
                'verbose_name_plural': 'User Quotas',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(quota_bytes__gte=0), name='quota_bytes_non_negative'),
                    models.CheckConstraint(condition=models.Q(used_bytes__gte=0), name='used_bytes_non_negative'),
                ],
            },
        ),
    ]
