"""
Data models for Lead Broker Service.
"""
import uuid

from django.db import models
from django.db.models import Q
from django.utils import timezone


def generate_tx_id() -> str:
    """Opaque, globally unique transaction id handed to advertisers."""
    return f"AZ-{uuid.uuid4().hex}"


class Affiliate(models.Model):
    """Traffic source sending leads into the broker."""

    name = models.CharField(max_length=200)
    email = models.EmailField()
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Advertiser(models.Model):
    """
    Buyer receiving forwarded leads.
    An empty endpoint_secret means unsigned delivery and unauthenticated callbacks.
    """

    name = models.CharField(max_length=200, unique=True)
    platform = models.CharField(max_length=100, blank=True, default='')
    endpoint_url = models.URLField(max_length=500)
    endpoint_secret = models.CharField(max_length=255, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Offer(models.Model):
    advertiser = models.ForeignKey(Advertiser, on_delete=models.PROTECT, related_name='offers')
    name = models.CharField(max_length=200)
    payout_amount = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Mapping(models.Model):
    """
    Routing rule tying (affiliate, offer) to an advertiser.
    At most one enabled rule should match a pair; duplicates are a configuration error.
    """

    affiliate = models.ForeignKey(Affiliate, on_delete=models.PROTECT, related_name='mappings')
    offer = models.ForeignKey(Offer, on_delete=models.PROTECT, related_name='mappings')
    advertiser = models.ForeignKey(Advertiser, on_delete=models.PROTECT, related_name='mappings')
    forward_url = models.URLField(max_length=500, blank=True, default='')
    enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']
        indexes = [
            models.Index(fields=['affiliate', 'offer'], name='pipeline_map_aff_offer_idx'),
        ]

    def __str__(self):
        return f"Mapping {self.affiliate_id}/{self.offer_id} -> {self.advertiser_id}"


class FieldMapping(models.Model):
    """
    Per-advertiser outbound field rule.
    transform is an optional descriptor such as {"type": "concat", "template": "+49 {{value}}"}.
    """

    advertiser = models.ForeignKey(Advertiser, on_delete=models.CASCADE, related_name='field_mappings')
    source_field = models.CharField(max_length=100)
    target_field = models.CharField(max_length=100)
    allowlist = models.BooleanField(default=True)
    transform = models.JSONField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.source_field} -> {self.target_field}"


class Lead(models.Model):
    """
    One contact submission tracked through its delivery lifecycle.
    Created by the tracking intake, mutated by delivery and callback reconciliation.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        FORWARDED = 'forwarded', 'Forwarded'
        APPROVED = 'approved', 'Approved'
        REJECTED = 'rejected', 'Rejected'
        NO_MAPPING = 'no_mapping', 'No Mapping'
        FORWARD_FAILED = 'forward_failed', 'Forward Failed'

    az_tx_id = models.CharField(max_length=64, unique=True, default=generate_tx_id)
    affiliate = models.ForeignKey(Affiliate, on_delete=models.PROTECT, related_name='leads')
    advertiser = models.ForeignKey(
        Advertiser,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='leads'
    )
    offer = models.ForeignKey(
        Offer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='leads'
    )
    raw_payload = models.JSONField(default=dict, blank=True)
    email = models.CharField(max_length=255, null=True, blank=True)
    phone = models.CharField(max_length=64, null=True, blank=True)
    first_name = models.CharField(max_length=100, null=True, blank=True)
    last_name = models.CharField(max_length=100, null=True, blank=True)
    country = models.CharField(max_length=64, null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True
    )
    advertiser_status = models.CharField(max_length=100, null=True, blank=True)
    advertiser_response = models.JSONField(null=True, blank=True)
    payout = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    ftd_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='pipeline_lead_status_idx'),
        ]

    def __str__(self):
        return f"Lead {self.az_tx_id} - {self.status}"

    @property
    def standard_fields(self) -> dict:
        """Canonical contact fields, keyed by their outbound names."""
        return {
            'email': self.email,
            'phone': self.phone,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'country': self.country,
        }

    def apply_advertiser_status(self, advertiser_status, payout=None, now=None) -> bool:
        """
        Apply an advertiser callback to this lead (caller saves).

        The raw advertiser status and payout are always recorded. The canonical
        status only moves forward: approved and rejected are final, so a late
        "rejected" never reverses an approval and interim statuses never
        touch the canonical status.

        Returns:
            True if the canonical status changed
        """
        self.advertiser_status = advertiser_status
        if payout is not None:
            self.payout = payout

        final = (self.Status.APPROVED, self.Status.REJECTED)

        if advertiser_status == self.Status.APPROVED:
            if self.ftd_at is None and self.status not in final:
                self.ftd_at = now or timezone.now()
                self.status = self.Status.APPROVED
                return True
        elif advertiser_status == self.Status.REJECTED:
            if self.status not in final:
                self.status = self.Status.REJECTED
                return True
        return False


class ForwardAttempt(models.Model):
    """
    Records each attempt to deliver a lead to an advertiser.
    Full request and response (or transport error) are kept for dispute audits.
    """

    lead = models.ForeignKey(
        Lead,
        on_delete=models.PROTECT,
        related_name='forward_attempts'
    )
    attempt_no = models.PositiveIntegerField()
    request = models.JSONField()
    response = models.JSONField(null=True, blank=True)
    status_code = models.PositiveIntegerField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    success = models.BooleanField(default=False)
    latency_ms = models.PositiveIntegerField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['lead', 'created_at', 'attempt_no']
        indexes = [
            models.Index(fields=['lead', 'attempt_no'], name='pipeline_fwd_lead_attempt_idx'),
        ]

    def __str__(self):
        return f"Attempt {self.attempt_no} for Lead {self.lead_id} - {'Success' if self.success else 'Failed'}"


class CallbackLog(models.Model):
    """Every inbound advertiser callback, accepted or not."""

    advertiser = models.ForeignKey(
        Advertiser,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='callback_logs'
    )
    az_tx_id = models.CharField(max_length=64, db_index=True)
    payload = models.JSONField()
    signature = models.CharField(max_length=255, null=True, blank=True)
    status_code = models.PositiveIntegerField()
    error_code = models.CharField(max_length=50, null=True, blank=True)
    received_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-received_at']

    def __str__(self):
        return f"Callback {self.az_tx_id} - {self.status_code}"


class Commission(models.Model):
    """
    Monetary record for a payable conversion.
    Automatic commissions are unique per (lead, advertiser).
    """

    class Kind(models.TextChoices):
        AUTO = 'auto', 'Automatic'
        MANUAL = 'manual', 'Manual'

    lead = models.ForeignKey(
        Lead,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='commissions'
    )
    advertiser = models.ForeignKey(Advertiser, on_delete=models.PROTECT, related_name='commissions')
    affiliate = models.ForeignKey(Affiliate, on_delete=models.PROTECT, related_name='commissions')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.CharField(max_length=255)
    kind = models.CharField(max_length=10, choices=Kind.choices, default=Kind.AUTO)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['lead', 'advertiser'],
                condition=Q(kind='auto'),
                name='unique_auto_commission_per_lead',
            ),
        ]

    def __str__(self):
        return f"Commission {self.amount} for Lead {self.lead_id}"
