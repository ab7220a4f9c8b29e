from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="UserProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("display_name", models.CharField(blank=True, max_length=100)),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("CLIENT", "Client"),
                            ("ADMIN", "Administrator"),
                            ("ANALYST", "Analyst"),
                            ("SUPERVISOR", "Supervisor"),
                        ],
                        db_index=True,
                        default="CLIENT",
                        max_length=20,
                    ),
                ),
                ("company", models.CharField(blank=True, max_length=200)),
                ("phone", models.CharField(blank=True, max_length=20)),
                ("is_verified", models.BooleanField(default=False)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="profile",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="Sample",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("code", models.CharField(editable=False, max_length=20, unique=True)),
                ("sequence", models.PositiveIntegerField(editable=False)),
                (
                    "mineral",
                    models.CharField(
                        choices=[
                            ("CU", "Copper"),
                            ("CO", "Cobalt"),
                            ("LI", "Lithium"),
                            ("AU", "Gold"),
                            ("SN", "Tin"),
                            ("TA", "Tantalum"),
                            ("W", "Tungsten"),
                            ("ZN", "Zinc"),
                            ("PB", "Lead"),
                            ("NI", "Nickel"),
                        ],
                        db_index=True,
                        max_length=4,
                    ),
                ),
                ("site", models.CharField(max_length=200)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("RECEIVED", "Received"),
                            ("PREP", "Preparation"),
                            ("ANALYZING", "Analyzing"),
                            ("QA_QC", "QA/QC"),
                            ("REPORTED", "Reported"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="RECEIVED",
                        editable=False,
                        max_length=20,
                    ),
                ),
                ("grade", models.DecimalField(blank=True, decimal_places=4, max_digits=12, null=True)),
                (
                    "unit",
                    models.CharField(
                        choices=[
                            ("PERCENT", "%"),
                            ("GRAMS_PER_TON", "g/t"),
                            ("PPM", "ppm"),
                            ("OUNCES_PER_TON", "oz/t"),
                        ],
                        max_length=20,
                    ),
                ),
                ("mass", models.DecimalField(decimal_places=2, max_digits=10)),
                ("notes", models.TextField(blank=True)),
                ("priority", models.PositiveSmallIntegerField(default=1)),
                ("received_at", models.DateTimeField(db_index=True)),
                ("due_date", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "analyst",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="assigned_samples",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "client",
                    models.ForeignKey(
                        editable=False,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="samples",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["client", "status"], name="sample_client_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("priority__gte", 1), ("priority__lte", 3)),
                        name="sample_priority_range",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("mass__gt", 0)),
                        name="sample_mass_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("completed_at__isnull", False), ("status", "REPORTED")),
                            models.Q(
                                models.Q(("status", "REPORTED"), _negated=True),
                                ("completed_at__isnull", True),
                            ),
                            _connector="OR",
                        ),
                        name="sample_completed_iff_reported",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Report",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("report_code", models.CharField(max_length=30, unique=True)),
                ("grade", models.DecimalField(decimal_places=4, max_digits=12)),
                (
                    "unit",
                    models.CharField(
                        choices=[
                            ("PERCENT", "%"),
                            ("GRAMS_PER_TON", "g/t"),
                            ("PPM", "ppm"),
                            ("OUNCES_PER_TON", "oz/t"),
                        ],
                        max_length=20,
                    ),
                ),
                ("certified", models.BooleanField(db_index=True, default=False)),
                ("hash", models.CharField(editable=False, max_length=64)),
                ("qr_code", models.TextField(blank=True, editable=False)),
                ("notes", models.TextField(blank=True)),
                ("issued_at", models.DateTimeField(db_index=True)),
                ("valid_until", models.DateTimeField(blank=True, null=True)),
                (
                    "issued_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="issued_reports",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "sample",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="report",
                        to="assay_core.sample",
                    ),
                ),
            ],
            options={
                "ordering": ["-issued_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="SampleDocument",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("filename", models.CharField(max_length=255)),
                ("original_name", models.CharField(max_length=255)),
                ("mime_type", models.CharField(db_index=True, max_length=100)),
                ("size", models.PositiveBigIntegerField()),
                ("path", models.CharField(max_length=500, unique=True)),
                ("uploaded_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "sample",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="documents",
                        to="assay_core.sample",
                    ),
                ),
                (
                    "uploaded_by",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="uploaded_documents",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-uploaded_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(db_index=True, max_length=64)),
                ("entity", models.CharField(blank=True, max_length=64)),
                ("entity_id", models.CharField(blank=True, max_length=64)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_logs",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["action", "created_at"], name="audit_action_time_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TimelineEvent",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("RECEIVED", "Received"),
                            ("PREP", "Preparation"),
                            ("ANALYZING", "Analyzing"),
                            ("QA_QC", "QA/QC"),
                            ("REPORTED", "Reported"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        max_length=20,
                    ),
                ),
                ("notes", models.TextField(blank=True)),
                ("timestamp", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "sample",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="timeline",
                        to="assay_core.sample",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="timeline_events",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["timestamp", "id"],
                "indexes": [
                    models.Index(fields=["sample", "timestamp"], name="timeline_sample_ts_idx"),
                ],
            },
        ),
    ]
