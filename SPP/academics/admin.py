from django.contrib import admin, messages
from django.db import transaction

from .models import AcademicYear, Class
from .services import AcademicYearService


# ----------------------------
# Class Inline (Inside Academic Year)
# ----------------------------
class ClassInline(admin.TabularInline):
    model = Class
    extra = 0
    fields = ('name', 'grade_level', 'is_active')
    show_change_link = True


# ----------------------------
# Academic Year Admin
# ----------------------------
@admin.register(AcademicYear)
class AcademicYearAdmin(admin.ModelAdmin):
    list_display = (
        'name',
        'start_date',
        'end_date',
        'start_month',
        'end_month',
        'is_active',
    )

    list_filter = (
        'is_active',
    )

    search_fields = (
        'name',
    )

    readonly_fields = (
        'is_active',
        'created_at',
        'updated_at',
    )

    inlines = [ClassInline]
    actions = ['activate_academic_year']

    @admin.action(description='Activate selected academic year')
    def activate_academic_year(self, request, queryset):
        if queryset.count() != 1:
            self.message_user(request, 'Select exactly one academic year to activate.', messages.ERROR)
            return
        academic_year = AcademicYearService.activate(queryset.get().pk)
        self.message_user(request, f'{academic_year.name} is now the active academic year.', messages.SUCCESS)

    def has_delete_permission(self, request, obj=None):
        # Active years and years still referenced are never offered for deletion.
        if obj is not None and AcademicYearService.deletion_blocker(obj):
            return False
        return super().has_delete_permission(request, obj)

    def save_model(self, request, obj, form, change):
        AcademicYearService.save_academic_year(obj)

    def delete_model(self, request, obj):
        AcademicYearService.delete_academic_year(obj.pk)

    @transaction.atomic
    def delete_queryset(self, request, queryset):
        for academic_year in queryset:
            AcademicYearService.delete_academic_year(academic_year.pk)


# ----------------------------
# Class Admin
# ----------------------------
@admin.register(Class)
class ClassAdmin(admin.ModelAdmin):
    list_display = (
        'name',
        'grade_level',
        'academic_year',
        'is_active',
    )

    list_filter = (
        'academic_year',
        'grade_level',
        'is_active',
    )

    search_fields = (
        'name',
        'academic_year__name',
    )

    readonly_fields = (
        'created_at',
        'updated_at',
    )

    autocomplete_fields = ('academic_year', 'created_by')

    def save_model(self, request, obj, form, change):
        if not change and not obj.created_by_id:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)
