import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Flow",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=120)),
                ("description", models.TextField(blank=True, default="")),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("active", "Active"), ("paused", "Paused"), ("archived", "Archived")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("settings", models.JSONField(blank=True, default=dict)),
                ("google_ads_config", models.JSONField(blank=True, default=dict)),
                ("style_config", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "flows",
                "ordering": ("-updated_at",),
            },
        ),
        migrations.CreateModel(
            name="FlowAudit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("flow_id", models.UUIDField(db_index=True)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("save_draft", "Draft saved"),
                            ("publish", "Published"),
                            ("status", "Status changed"),
                            ("migrate", "Migrated from legacy tables"),
                            ("delete", "Deleted"),
                        ],
                        max_length=16,
                    ),
                ),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "db_table": "flow_audit",
                "ordering": ("-created_at", "-id"),
            },
        ),
        migrations.CreateModel(
            name="FlowVersion",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("version", models.PositiveIntegerField()),
                (
                    "status",
                    models.CharField(
                        choices=[("draft", "Draft"), ("published", "Published")],
                        default="draft",
                        max_length=16,
                    ),
                ),
                ("payload", models.JSONField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("published_at", models.DateTimeField(blank=True, null=True)),
                (
                    "flow",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="versions",
                        to="leadflows.flow",
                    ),
                ),
            ],
            options={
                "db_table": "flow_versions",
                "ordering": ("flow", "-version"),
            },
        ),
        migrations.CreateModel(
            name="LegacyFlowStep",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("step_order", models.IntegerField(default=0)),
                ("step_type", models.CharField(max_length=32)),
                ("title", models.CharField(blank=True, default="", max_length=255)),
                ("subtitle", models.CharField(blank=True, max_length=255, null=True)),
                ("content", models.TextField(blank=True, null=True)),
                ("button_text", models.CharField(blank=True, max_length=100, null=True)),
                ("is_required", models.BooleanField(blank=True, null=True)),
                ("settings", models.JSONField(blank=True, default=dict)),
                ("skip_logic", models.JSONField(blank=True, null=True)),
                ("navigation_logic", models.JSONField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "flow",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="legacy_steps",
                        to="leadflows.flow",
                    ),
                ),
            ],
            options={
                "db_table": "flow_steps",
                "ordering": ("flow", "step_order"),
            },
        ),
        migrations.CreateModel(
            name="LegacyFlowField",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("field_order", models.IntegerField(default=0)),
                ("field_type", models.CharField(max_length=32)),
                ("field_name", models.CharField(max_length=100)),
                ("label", models.CharField(blank=True, default="", max_length=255)),
                ("placeholder", models.CharField(blank=True, max_length=255, null=True)),
                ("help_text", models.TextField(blank=True, null=True)),
                ("is_required", models.BooleanField(blank=True, null=True)),
                ("validation_rules", models.JSONField(blank=True, null=True)),
                ("options", models.JSONField(blank=True, null=True)),
                ("default_value", models.TextField(blank=True, null=True)),
                ("conditional_logic", models.JSONField(blank=True, null=True)),
                (
                    "step",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="legacy_fields",
                        to="leadflows.legacyflowstep",
                    ),
                ),
            ],
            options={
                "db_table": "flow_fields",
                "ordering": ("step", "field_order"),
            },
        ),
        migrations.AddConstraint(
            model_name="flow",
            constraint=models.UniqueConstraint(
                condition=models.Q(("status", "active")),
                fields=("slug",),
                name="uniq_active_flow_slug",
            ),
        ),
        migrations.AddConstraint(
            model_name="flowversion",
            constraint=models.UniqueConstraint(fields=("flow", "version"), name="uniq_flow_version"),
        ),
    ]
