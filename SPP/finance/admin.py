from django.contrib import admin, messages

from .models import (
    DocumentSequence, SavingsAccount, SavingsTransaction, Scholarship,
    SppPayment, SppPaymentDetail, TuitionRate,
)
from .services import ScholarshipService


@admin.register(TuitionRate)
class TuitionRateAdmin(admin.ModelAdmin):
    list_display = ['academic_year', 'grade_level', 'monthly_amount', 'due_date', 'late_fee_enabled', 'late_fee_type', 'late_fee_amount']
    list_filter = ['academic_year', 'grade_level', 'late_fee_enabled']
    readonly_fields = ['created_at', 'updated_at']


class SppPaymentDetailInline(admin.TabularInline):
    model = SppPaymentDetail
    extra = 0
    can_delete = False
    readonly_fields = ['month', 'year', 'amount']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(SppPayment)
class SppPaymentAdmin(admin.ModelAdmin):
    """Read-only: payments change only through BillingService."""

    list_display = ['receipt_number', 'student', 'academic_year', 'payment_date', 'months_label', 'subtotal', 'discount', 'late_fee', 'total_amount', 'payment_method']
    list_filter = ['payment_method', 'academic_year', 'payment_date']
    search_fields = ['receipt_number', 'student__first_name', 'student__last_name', 'student__admission_number']
    date_hierarchy = 'payment_date'
    inlines = [SppPaymentDetailInline]

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related('details')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SavingsTransaction)
class SavingsTransactionAdmin(admin.ModelAdmin):
    """Read-only: the ledger is only written through SavingsService."""

    list_display = ['transaction_number', 'student', 'transaction_type', 'amount', 'balance_before', 'balance_after', 'transaction_date']
    list_filter = ['transaction_type', 'transaction_date']
    search_fields = ['transaction_number', 'student__first_name', 'student__last_name', 'student__admission_number']
    date_hierarchy = 'transaction_date'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(SavingsAccount)
class SavingsAccountAdmin(admin.ModelAdmin):
    list_display = ['student', 'balance', 'last_transaction', 'updated_at']
    search_fields = ['student__first_name', 'student__last_name', 'student__admission_number']
    readonly_fields = ['student', 'balance', 'last_transaction', 'updated_at']

    def has_add_permission(self, request):
        return False


@admin.register(Scholarship)
class ScholarshipAdmin(admin.ModelAdmin):
    list_display = ['name', 'student', 'scholarship_type', 'discount_percentage', 'discount_amount', 'start_date', 'end_date', 'status']
    list_filter = ['scholarship_type', 'status', 'academic_year']
    search_fields = ['name', 'sponsor', 'student__first_name', 'student__admission_number']
    readonly_fields = ['status', 'created_at', 'updated_at']
    actions = ['refresh_statuses']

    @admin.action(description='Refresh status from dates')
    def refresh_statuses(self, request, queryset):
        changed = ScholarshipService.refresh_statuses()
        self.message_user(request, f'Updated {changed} scholarship status(es).', messages.SUCCESS)


@admin.register(DocumentSequence)
class DocumentSequenceAdmin(admin.ModelAdmin):
    list_display = ['key', 'last_value', 'updated_at']
    readonly_fields = ['key', 'last_value', 'updated_at']
