# Generated manually for adapter drift bookkeeping

from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("scraper", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="scrapeadapterstatus",
            name="consecutive_failed_batches",
            field=models.IntegerField(default=0),
        ),
        migrations.AddField(
            model_name="scrapeadapterstatus",
            name="last_batch_zero_price",
            field=models.BooleanField(default=False),
        ),
    ]
