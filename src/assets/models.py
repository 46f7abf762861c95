"""Models for ControlHS asset custody and transfers."""

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

from .services.state import TransferStatus, derive_status, status_q


class Sector(models.Model):
    """Organisational unit that holds assets."""

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Asset(models.Model):
    """Physical equipment tracked by the registry."""

    STATUS_ACTIVE = "active"
    STATUS_MAINTENANCE = "maintenance"
    STATUS_RETIRED = "retired"

    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_MAINTENANCE, "Maintenance"),
        (STATUS_RETIRED, "Retired"),
    ]

    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    serial_number = models.CharField(max_length=100, blank=True)
    sector = models.ForeignKey(
        Sector,
        on_delete=models.PROTECT,
        related_name="assets",
    )
    custodian = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="custody_assets",
        help_text="Person currently responsible for the asset",
    )
    status = models.CharField(
        max_length=20, choices=STATUS_CHOICES, default=STATUS_ACTIVE
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_assets",
    )

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="idx_asset_status"),
        ]

    def __str__(self):
        if self.serial_number:
            return f"{self.name} ({self.serial_number})"
        return self.name

    @property
    def is_retired(self):
        return self.status == self.STATUS_RETIRED


class TransferRequestQuerySet(models.QuerySet):
    """Status filters built from the same predicates as ``status``."""

    def with_status(self, status):
        return self.filter(status_q(status))

    def pending(self):
        return self.with_status(TransferStatus.PENDING)

    def approved(self):
        return self.with_status(TransferStatus.APPROVED)

    def rejected(self):
        return self.with_status(TransferStatus.REJECTED)

    def completed(self):
        return self.with_status(TransferStatus.COMPLETED)


class TransferRequest(models.Model):
    """A proposed move of an asset to another sector and/or custodian.

    No status column is stored; ``status`` is derived from the approval,
    rejection and effectuation fields.
    """

    IMMUTABLE_FIELDS = (
        "asset_id",
        "origin_sector_id",
        "origin_custodian_id",
        "requester_id",
    )

    asset = models.ForeignKey(
        Asset, on_delete=models.PROTECT, related_name="transfers"
    )
    origin_sector = models.ForeignKey(
        Sector,
        on_delete=models.PROTECT,
        related_name="transfers_out",
    )
    origin_custodian = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transfers_out",
    )
    destination_sector = models.ForeignKey(
        Sector,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="transfers_in",
    )
    destination_custodian = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="transfers_in",
    )
    reason = models.TextField()
    requester = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="requested_transfers",
    )
    approver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="resolved_transfers",
        help_text="Who approved or rejected the request",
    )
    approval_notes = models.TextField(blank=True, default="")
    rejection_reason = models.TextField(blank=True, default="")
    approved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the request was approved or rejected",
    )
    effectuated = models.BooleanField(default=False)
    effectuated_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = TransferRequestQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-pk"]
        constraints = [
            models.UniqueConstraint(
                fields=["asset"],
                condition=status_q(TransferStatus.PENDING),
                name="unique_pending_transfer_per_asset",
                violation_error_message=(
                    "This asset already has a pending transfer."
                ),
            ),
            models.CheckConstraint(
                condition=Q(destination_sector__isnull=False)
                | Q(destination_custodian__isnull=False),
                name="transfer_has_destination",
            ),
            models.CheckConstraint(
                condition=~Q(destination_sector=F("origin_sector")),
                name="transfer_sector_differs",
            ),
            models.CheckConstraint(
                condition=~Q(destination_custodian=F("origin_custodian")),
                name="transfer_custodian_differs",
            ),
            models.CheckConstraint(
                condition=Q(rejection_reason="") | Q(effectuated=False),
                name="transfer_rejected_not_effectuated",
            ),
            models.CheckConstraint(
                condition=Q(effectuated=False) | Q(approver__isnull=False),
                name="transfer_effectuated_requires_approver",
            ),
        ]
        indexes = [
            models.Index(
                fields=["created_at"], name="idx_transfer_created_at"
            ),
        ]

    def __str__(self):
        return f"Transfer #{self.pk} of {self.asset} ({self.status})"

    @property
    def status(self) -> str:
        return derive_status(self)

    def get_status_display(self):
        return TransferStatus(self.status).label

    def save(self, *args, **kwargs):
        if self.pk is not None:
            stored = (
                TransferRequest.objects.filter(pk=self.pk)
                .values(*self.IMMUTABLE_FIELDS)
                .first()
            )
            if stored:
                changed = [
                    name
                    for name in self.IMMUTABLE_FIELDS
                    if stored[name] != getattr(self, name)
                ]
                if changed:
                    raise ValidationError(
                        "Transfer snapshot fields cannot be modified: "
                        f"{', '.join(changed)}."
                    )
        super().save(*args, **kwargs)


class AuditLog(models.Model):
    """Immutable record of transfer workflow actions."""

    ACTION_CHOICES = [
        ("create_transfer", "Create Transfer"),
        ("approve_transfer", "Approve Transfer"),
        ("reject_transfer", "Reject Transfer"),
        ("effectuate_transfer", "Effectuate Transfer"),
    ]

    action = models.CharField(max_length=40, choices=ACTION_CHOICES)
    entity = models.CharField(max_length=50)
    entity_id = models.PositiveBigIntegerField()
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="audit_entries",
    )
    payload = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-pk"]
        indexes = [
            models.Index(
                fields=["entity", "entity_id"], name="idx_audit_entity"
            ),
        ]

    def __str__(self):
        return f"{self.get_action_display()} {self.entity} #{self.entity_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(
                "Audit entries are immutable and cannot be modified."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "Audit entries are immutable and cannot be deleted."
        )
