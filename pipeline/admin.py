"""
Django admin configuration for pipeline app.
"""
from django.apps import apps
from django.contrib import admin, messages
from pipeline.models import Lead, ForwardAttempt, CallbackLog, Commission
from pipeline.services.ledger import record_manual_commission
from pipeline.tasks import retry_lead


class ForwardAttemptInline(admin.TabularInline):
    """Inline display of forward attempts for a lead."""
    model = ForwardAttempt
    extra = 0
    readonly_fields = ('attempt_no', 'created_at', 'status_code', 'success', 'latency_ms', 'error_message',
                       'request', 'response')
    can_delete = False


@admin.action(description='Retry forwarding')
def retry_forwarding(modeladmin, request, queryset):
    """Reset selected leads to pending and enqueue fresh forward jobs."""
    scheduler = apps.get_app_config('pipeline').scheduler
    for lead in queryset:
        retry_lead(lead.id, scheduler)
    modeladmin.message_user(request, f"{queryset.count()} lead(s) queued for forwarding", messages.SUCCESS)


@admin.register(Lead)
class LeadAdmin(admin.ModelAdmin):
    """Admin interface for Lead model."""

    list_display = ('id', 'az_tx_id', 'status', 'advertiser_status', 'advertiser', 'payout', 'created_at')
    list_filter = ('status', 'created_at')
    search_fields = ('az_tx_id', 'email')
    readonly_fields = ('id', 'az_tx_id', 'affiliate', 'offer', 'advertiser', 'status', 'advertiser_status',
                       'payout', 'ftd_at', 'created_at', 'updated_at', 'raw_payload', 'advertiser_response',
                       'email', 'phone', 'first_name', 'last_name', 'country')
    actions = [retry_forwarding]

    fieldsets = (
        ('Status', {
            'fields': ('id', 'az_tx_id', 'status', 'advertiser_status', 'payout', 'ftd_at')
        }),
        ('Routing', {
            'fields': ('affiliate', 'offer', 'advertiser')
        }),
        ('Contact', {
            'fields': ('email', 'phone', 'first_name', 'last_name', 'country'),
            'classes': ('collapse',)
        }),
        ('Payloads', {
            'fields': ('raw_payload', 'advertiser_response'),
            'classes': ('collapse',)
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    inlines = [ForwardAttemptInline]

    def has_add_permission(self, request):
        """Leads come from the tracking intake only."""
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ForwardAttempt)
class ForwardAttemptAdmin(admin.ModelAdmin):
    """Admin interface for ForwardAttempt model."""

    list_display = ('id', 'lead', 'attempt_no', 'created_at', 'status_code', 'success')
    list_filter = ('success', 'created_at')
    search_fields = ('lead__az_tx_id',)
    readonly_fields = ('lead', 'attempt_no', 'request', 'response', 'status_code', 'error_message',
                       'success', 'latency_ms', 'created_at')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(CallbackLog)
class CallbackLogAdmin(admin.ModelAdmin):
    list_display = ('id', 'az_tx_id', 'advertiser', 'status_code', 'error_code', 'received_at')
    list_filter = ('status_code', 'received_at')
    search_fields = ('az_tx_id',)
    readonly_fields = ('advertiser', 'az_tx_id', 'payload', 'signature', 'status_code', 'error_code',
                       'received_at')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Commission)
class CommissionAdmin(admin.ModelAdmin):
    """Commissions are read-only, except operators may add manual ones."""

    list_display = ('id', 'lead', 'advertiser', 'affiliate', 'amount', 'kind', 'created_at')
    list_filter = ('kind', 'created_at')
    fields = ('lead', 'advertiser', 'affiliate', 'amount', 'description')

    def save_model(self, request, obj, form, change):
        if change:
            return
        commission = record_manual_commission(
            advertiser=obj.advertiser,
            affiliate=obj.affiliate,
            amount=obj.amount,
            description=obj.description,
            lead=obj.lead,
        )
        obj.pk = commission.pk

    def has_change_permission(self, request, obj=None):
        return obj is None

    def has_delete_permission(self, request, obj=None):
        return False
