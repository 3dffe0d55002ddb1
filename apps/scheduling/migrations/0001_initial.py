import django.db.models.deletion
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('bookings', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='CalendarResource',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('key', models.CharField(max_length=255, unique=True)),
            ],
            options={
                'verbose_name': 'Calendar Resource',
                'verbose_name_plural': 'Calendar Resources',
                'ordering': ['key'],
            },
        ),
        migrations.CreateModel(
            name='CalendarEvent',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=255)),
                ('start', models.DateTimeField(db_index=True)),
                ('end', models.DateTimeField(db_index=True)),
                ('status', models.CharField(choices=[('scheduled', 'Scheduled'), ('cancelled', 'Cancelled')], db_index=True, default='scheduled', max_length=10)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('booking_request', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='calendar_events', to='bookings.bookingrequest')),
                ('resource', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='events', to='scheduling.calendarresource')),
            ],
            options={
                'verbose_name': 'Calendar Event',
                'verbose_name_plural': 'Calendar Events',
                'ordering': ['start'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('start__lt', models.F('end'))), name='ck_calendar_event_window'),
                    models.UniqueConstraint(condition=models.Q(('status', 'scheduled')), fields=('booking_request',), name='uq_scheduled_event_per_request'),
                ],
            },
        ),
    ]
