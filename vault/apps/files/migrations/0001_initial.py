import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Folder',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('parent', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='sub_folders', to='files.folder')),
            ],
            options={
                'verbose_name': 'Folder',
                'verbose_name_plural': 'Folders',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='FileRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('file_name', models.CharField(max_length=255)),
                ('content_type', models.CharField(blank=True, default='', help_text='Content type reported by the client or the store', max_length=255)),
                ('safe_content_type', models.CharField(blank=True, default='', help_text='Content type with extension-based fallback', max_length=255)),
                ('friendly_content_type', models.CharField(blank=True, default='', help_text='Display name, e.g. "PDF" or "Image"', max_length=64)),
                ('size', models.BigIntegerField(default=0, help_text='File size in bytes, refreshed on confirm')),
                ('bucket', models.CharField(max_length=63)),
                ('object_key', models.CharField(max_length=1024, unique=True)),
                ('status', models.CharField(choices=[('Pending', 'Pending'), ('Uploaded', 'Uploaded'), ('Failed', 'Failed')], default='Pending', max_length=16)),
                ('is_deleted', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('folder', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='files', to='files.folder')),
            ],
            options={
                'verbose_name': 'File record',
                'verbose_name_plural': 'File records',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'created_at'], name='files_status_created_idx'),
                    models.Index(fields=['status', 'updated_at'], name='files_status_updated_idx'),
                    models.Index(fields=['is_deleted', 'updated_at'], name='files_deleted_updated_idx'),
                ],
            },
        ),
    ]
