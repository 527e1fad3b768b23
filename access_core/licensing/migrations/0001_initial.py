import uuid

import django.db.models.deletion
import django.db.models.expressions
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('accounts', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='License',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('key', models.CharField(max_length=64, unique=True)),
                ('license_type', models.CharField(choices=[('trial', 'Trial'), ('standard', 'Standard'), ('enterprise', 'Enterprise')], default='standard', max_length=20)),
                ('max_users', models.PositiveIntegerField()),
                ('valid_from', models.DateTimeField()),
                ('valid_until', models.DateTimeField()),
                ('is_active', models.BooleanField(default=True)),
                ('features', models.JSONField(blank=True, default=list)),
                ('company', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='license', to='accounts.company')),
            ],
            options={
                'db_table': 'company_licenses',
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('valid_from__lte', django.db.models.expressions.F('valid_until'))), name='license_valid_from_before_valid_until'),
                ],
            },
        ),
    ]
