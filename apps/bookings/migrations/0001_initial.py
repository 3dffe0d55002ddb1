import django.db.models.deletion
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='BookingRequest',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(db_index=True, max_length=255)),
                ('sequence_number', models.PositiveIntegerField()),
                ('merchant_name', models.CharField(db_index=True, max_length=200)),
                ('contact_email', models.EmailField(max_length=254)),
                ('contact_phone', models.CharField(blank=True, max_length=40)),
                ('additional_emails', models.JSONField(blank=True, default=list)),
                ('pricing_options', models.JSONField(default=list)),
                ('start_date', models.DateField(db_index=True)),
                ('end_date', models.DateField()),
                ('description', models.TextField(blank=True)),
                ('category', models.CharField(blank=True, db_index=True, max_length=255)),
                ('status', models.CharField(choices=[('draft', 'Draft'), ('submitted', 'Submitted'), ('approved', 'Approved'), ('booked', 'Booked'), ('rejected', 'Rejected'), ('cancelled', 'Cancelled')], db_index=True, default='draft', max_length=12)),
                ('needs_resolution', models.BooleanField(db_index=True, default=False)),
                ('source', models.CharField(choices=[('public_link', 'Public link'), ('internal', 'Internal form')], default='internal', max_length=12)),
                ('created_by', models.CharField(blank=True, help_text='Actor id; blank for public submissions', max_length=80)),
                ('requester_email', models.EmailField(blank=True, max_length=254)),
                ('processed_at', models.DateTimeField(blank=True, null=True)),
                ('processed_by', models.CharField(blank=True, max_length=254)),
                ('rejection_reason', models.TextField(blank=True)),
            ],
            options={
                'verbose_name': 'Booking Request',
                'verbose_name_plural': 'Booking Requests',
                'ordering': ['-created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('start_date__lte', models.F('end_date'))), name='ck_booking_request_date_range'),
                    models.UniqueConstraint(fields=('merchant_name', 'sequence_number'), name='uq_booking_request_merchant_sequence'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PublicLinkToken',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('token', models.CharField(db_index=True, max_length=64, unique=True)),
                ('is_used', models.BooleanField(db_index=True, default=False)),
                ('used_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('expires_at', models.DateTimeField(blank=True, db_index=True, null=True)),
                ('recipient_email', models.EmailField(blank=True, max_length=254)),
                ('created_by', models.CharField(blank=True, max_length=80)),
                ('booking_request', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='public_links', to='bookings.bookingrequest')),
            ],
            options={
                'verbose_name': 'Public Link',
                'verbose_name_plural': 'Public Links',
                'ordering': ['-created_at'],
            },
        ),
    ]
