"""
Add celery-beat schedules for escrow maintenance.

- Expire stale escrow orders: every 10 minutes
- Reconcile initialized escrow orders: every 5 minutes
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Expire Stale Escrow Orders",
        "task": "escrow.tasks.expire_stale_orders",
        "every": 10,
        "description": (
            "Marks unpaid escrow orders older than the expiry cutoff as expired."
        ),
    },
    {
        "name": "Reconcile Initialized Escrow Orders",
        "task": "escrow.tasks.reconcile_initialized_orders",
        "every": 5,
        "description": (
            "Verifies unpaid escrow orders with Paystack and confirms the paid ones."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for escrow maintenance."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in SCHEDULES],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("escrow", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
