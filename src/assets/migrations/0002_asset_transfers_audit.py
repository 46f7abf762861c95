import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("assets", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Asset",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("name", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True)),
                (
                    "serial_number",
                    models.CharField(blank=True, max_length=100),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("maintenance", "Maintenance"),
                            ("retired", "Retired"),
                        ],
                        default="active",
                        max_length=20,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_assets",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "custodian",
                    models.ForeignKey(
                        blank=True,
                        help_text="Person currently responsible for the asset",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="custody_assets",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "sector",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="assets",
                        to="assets.sector",
                    ),
                ),
            ],
            options={
                "ordering": ["name"],
                "indexes": [
                    models.Index(fields=["status"], name="idx_asset_status")
                ],
            },
        ),
        migrations.CreateModel(
            name="TransferRequest",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("reason", models.TextField()),
                (
                    "approval_notes",
                    models.TextField(blank=True, default=""),
                ),
                (
                    "rejection_reason",
                    models.TextField(blank=True, default=""),
                ),
                (
                    "approved_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the request was approved or rejected",
                        null=True,
                    ),
                ),
                ("effectuated", models.BooleanField(default=False)),
                (
                    "effectuated_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "approver",
                    models.ForeignKey(
                        blank=True,
                        help_text="Who approved or rejected the request",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="resolved_transfers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "asset",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfers",
                        to="assets.asset",
                    ),
                ),
                (
                    "destination_custodian",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transfers_in",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "destination_sector",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfers_in",
                        to="assets.sector",
                    ),
                ),
                (
                    "origin_custodian",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="transfers_out",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "origin_sector",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfers_out",
                        to="assets.sector",
                    ),
                ),
                (
                    "requester",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="requested_transfers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-pk"],
                "indexes": [
                    models.Index(
                        fields=["created_at"], name="idx_transfer_created_at"
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("rejection_reason", ""),
                            ("approver__isnull", True),
                            ("effectuated", False),
                        ),
                        fields=("asset",),
                        name="unique_pending_transfer_per_asset",
                        violation_error_message=(
                            "This asset already has a pending transfer."
                        ),
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("destination_sector__isnull", False),
                            ("destination_custodian__isnull", False),
                            _connector="OR",
                        ),
                        name="transfer_has_destination",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("destination_sector", models.F("origin_sector")),
                            _negated=True,
                        ),
                        name="transfer_sector_differs",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "destination_custodian",
                                models.F("origin_custodian"),
                            ),
                            _negated=True,
                        ),
                        name="transfer_custodian_differs",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("rejection_reason", ""),
                            ("effectuated", False),
                            _connector="OR",
                        ),
                        name="transfer_rejected_not_effectuated",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("effectuated", False),
                            ("approver__isnull", False),
                            _connector="OR",
                        ),
                        name="transfer_effectuated_requires_approver",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AuditLog",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("create_transfer", "Create Transfer"),
                            ("approve_transfer", "Approve Transfer"),
                            ("reject_transfer", "Reject Transfer"),
                            ("effectuate_transfer", "Effectuate Transfer"),
                        ],
                        max_length=40,
                    ),
                ),
                ("entity", models.CharField(max_length=50)),
                ("entity_id", models.PositiveBigIntegerField()),
                (
                    "payload",
                    models.JSONField(blank=True, default=dict),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "actor",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_entries",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-pk"],
                "indexes": [
                    models.Index(
                        fields=["entity", "entity_id"],
                        name="idx_audit_entity",
                    )
                ],
            },
        ),
    ]
