import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="IdSequence",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.UUIDField(db_index=True)),
                ("facility_id", models.UUIDField(db_index=True)),
                ("sequence_type", models.CharField(db_index=True, max_length=32)),
                ("prefix", models.CharField(max_length=10)),
                ("padding_length", models.PositiveSmallIntegerField(default=6)),
                ("current_value", models.PositiveBigIntegerField(default=0)),
                ("year", models.PositiveIntegerField()),
                ("reset_yearly", models.BooleanField(default=True)),
                ("last_issued_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "db_table": "sequences_id_sequence",
            },
        ),
        migrations.AddConstraint(
            model_name="idsequence",
            constraint=models.UniqueConstraint(
                fields=("tenant_id", "facility_id", "sequence_type"),
                name="uq_sequence_type_per_scope",
            ),
        ),
    ]
