from django import forms

from .models import AcademicYear


class AcademicYearForm(forms.ModelForm):
    class Meta:
        model = AcademicYear
        fields = [
            'name', 'start_date', 'end_date', 'start_month', 'end_month', 'allow_partial_payment',
        ]
