import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Sample",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("image_ref", models.CharField(help_text='Storage name of the image, e.g. "uploads/<uuid>.jpg".', max_length=500)),
                ("label", models.CharField(db_index=True, max_length=150)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("pending", "Pending"),
                            ("trained", "Trained"),
                        ],
                        db_index=True,
                        default="active",
                        max_length=20,
                    ),
                ),
                (
                    "confidence_at_capture",
                    models.FloatField(
                        blank=True,
                        help_text="Model confidence when a correction sample was captured.",
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
            ],
            options={
                "verbose_name": "Sample",
                "verbose_name_plural": "Samples",
                "db_table": "samples",
                "ordering": ["created_at", "id"],
            },
        ),
    ]
