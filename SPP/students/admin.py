from django.contrib import admin
from .models import Student


# ----------------------------
# Student Admin
# ----------------------------
@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = (
        'full_name',
        'admission_number',
        'student_class',
        'parent_phone',
        'is_active',
        'enrollment_date',
    )

    list_filter = (
        'is_active',
        'gender',
        'student_class__academic_year',
        'student_class',
    )

    search_fields = (
        'first_name',
        'last_name',
        'admission_number',
        'parent_name',
    )

    readonly_fields = (
        'created_at',
        'updated_at',
    )

    autocomplete_fields = ('student_class', 'created_by')

    fieldsets = (
        ("Basic Information", {
            "fields": (
                "admission_number",
                "first_name",
                "last_name",
                "gender",
                "date_of_birth",
            )
        }),
        ("Parent Contact", {
            "fields": (
                "parent_name",
                "parent_phone",
            )
        }),
        ("Academic Information", {
            "fields": (
                "student_class",
                "enrollment_date",
                "is_active",
            )
        }),
        ("Audit", {
            "fields": (
                "created_by",
                "created_at",
                "updated_at",
            ),
            "classes": ("collapse",),
        }),
    )

    def save_model(self, request, obj, form, change):
        if not change and not obj.created_by_id:
            obj.created_by = request.user
        super().save_model(request, obj, form, change)
