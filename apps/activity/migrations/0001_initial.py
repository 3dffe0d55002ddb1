import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='ActivityLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('actor_id', models.CharField(help_text='actor id / external / system', max_length=80)),
                ('actor_label', models.CharField(blank=True, max_length=254)),
                ('action', models.CharField(choices=[('CREATE', 'Create'), ('SUBMIT', 'Submit'), ('UPDATE', 'Update'), ('SEND', 'Send'), ('RESEND', 'Resend'), ('APPROVE', 'Approve'), ('REJECT', 'Reject'), ('BOOK', 'Book'), ('CONFLICT', 'Scheduling conflict'), ('CANCEL', 'Cancel'), ('RESCHEDULE', 'Reschedule'), ('ISSUE_LINK', 'Issue public link')], db_index=True, max_length=12)),
                ('entity_type', models.CharField(db_index=True, max_length=40)),
                ('entity_id', models.CharField(db_index=True, max_length=64)),
                ('entity_name', models.CharField(blank=True, max_length=255)),
                ('before', models.JSONField(blank=True, null=True)),
                ('after', models.JSONField(blank=True, null=True)),
                ('details', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                'verbose_name': 'Activity Log',
                'verbose_name_plural': 'Activity Log',
                'ordering': ['created_at'],
            },
        ),
    ]
