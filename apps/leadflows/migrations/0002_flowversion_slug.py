from django.db import migrations, models


def copy_payload_slug(apps, schema_editor):
    FlowVersion = apps.get_model("leadflows", "FlowVersion")
    for row in FlowVersion.objects.only("pk", "payload").iterator():
        payload = row.payload if isinstance(row.payload, dict) else {}
        slug = payload.get("slug")
        if isinstance(slug, str) and slug:
            FlowVersion.objects.filter(pk=row.pk).update(slug=slug[:120])


class Migration(migrations.Migration):

    dependencies = [
        ("leadflows", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="flowversion",
            name="slug",
            field=models.SlugField(blank=True, default="", max_length=120),
        ),
        migrations.RunPython(copy_payload_slug, migrations.RunPython.noop),
    ]
