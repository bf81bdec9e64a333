import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Location',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('city_name', models.CharField(max_length=200, unique=True)),
                ('latitude', models.FloatField()),
                ('longitude', models.FloatField()),
                ('country_code', models.CharField(blank=True, max_length=2)),
                ('timezone', models.CharField(blank=True, max_length=64, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'locations',
                'ordering': ['city_name'],
            },
        ),
        migrations.CreateModel(
            name='LocationAlias',
            fields=[
                ('alias', models.CharField(max_length=200, primary_key=True, serialize=False)),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='aliases', to='forecasts.location')),
            ],
            options={
                'db_table': 'location_aliases',
            },
        ),
        migrations.CreateModel(
            name='CurrentWeather',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('source_api', models.CharField(max_length=64)),
                ('observed_at', models.DateTimeField()),
                ('updated_at', models.DateTimeField(db_index=True)),
                ('temperature_c', models.FloatField(blank=True, null=True)),
                ('humidity', models.IntegerField(blank=True, null=True)),
                ('wind_speed_kmh', models.FloatField(blank=True, null=True)),
                ('precipitation_mm', models.FloatField(blank=True, null=True)),
                ('condition_text', models.CharField(blank=True, max_length=128)),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='current_weather', to='forecasts.location')),
            ],
            options={
                'db_table': 'current_weather',
                'constraints': [
                    models.UniqueConstraint(fields=('location', 'source_api'), name='unique_current_weather_per_source'),
                ],
            },
        ),
        migrations.CreateModel(
            name='HourlyForecast',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('source_api', models.CharField(max_length=64)),
                ('forecast_datetime', models.DateTimeField()),
                ('updated_at', models.DateTimeField(db_index=True)),
                ('temperature_c', models.FloatField(blank=True, null=True)),
                ('humidity', models.IntegerField(blank=True, null=True)),
                ('wind_speed_kmh', models.FloatField(blank=True, null=True)),
                ('precipitation_mm', models.FloatField(blank=True, null=True)),
                ('precipitation_chance', models.IntegerField(blank=True, null=True)),
                ('condition_text', models.CharField(blank=True, max_length=128)),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='hourly_forecasts', to='forecasts.location')),
            ],
            options={
                'db_table': 'hourly_forecasts',
                'ordering': ['forecast_datetime', 'source_api'],
                'indexes': [
                    models.Index(fields=['location', 'forecast_datetime'], name='hourly_location_slot_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('location', 'source_api', 'forecast_datetime'), name='unique_hourly_forecast_slot'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DailyForecast',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('source_api', models.CharField(max_length=64)),
                ('forecast_date', models.DateField()),
                ('updated_at', models.DateTimeField(db_index=True)),
                ('min_temp_c', models.FloatField(blank=True, null=True)),
                ('max_temp_c', models.FloatField(blank=True, null=True)),
                ('precipitation_mm', models.FloatField(blank=True, null=True)),
                ('precipitation_chance', models.IntegerField(blank=True, null=True)),
                ('wind_speed_kmh', models.FloatField(blank=True, null=True)),
                ('humidity', models.IntegerField(blank=True, null=True)),
                ('location', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='daily_forecasts', to='forecasts.location')),
            ],
            options={
                'db_table': 'daily_forecasts',
                'ordering': ['forecast_date', 'source_api'],
                'indexes': [
                    models.Index(fields=['location', 'forecast_date'], name='daily_location_slot_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('location', 'source_api', 'forecast_date'), name='unique_daily_forecast_slot'),
                ],
            },
        ),
    ]
