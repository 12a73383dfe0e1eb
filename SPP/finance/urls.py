from django.urls import path
from . import views

app_name = 'finance'

urlpatterns = [
    # Tuition
    path('bills/', views.students_with_bills, name='students_with_bills'),
    path('students/<int:student_id>/unpaid-months/', views.unpaid_months, name='unpaid_months'),
    path('students/<int:student_id>/bills/', views.student_bills, name='student_bills'),
    path('students/<int:student_id>/quote/', views.payment_quote, name='payment_quote'),
    path('students/<int:student_id>/payments/', views.payment_history, name='payment_history'),
    path('payments/', views.record_payment, name='record_payment'),
    path('payments/<int:payment_id>/', views.payment_detail, name='payment_detail'),
    path('payments/<int:payment_id>/update/', views.update_payment, name='update_payment'),
    path('payments/<int:payment_id>/delete/', views.delete_payment, name='delete_payment'),

    # Savings
    path('students/<int:student_id>/savings/', views.student_savings, name='student_savings'),
    path('savings/', views.record_savings, name='record_savings'),
    path('savings/balances/', views.savings_balances, name='savings_balances'),
    path('savings/<int:transaction_id>/', views.savings_detail, name='savings_detail'),
    path('savings/<int:transaction_id>/update/', views.update_savings, name='update_savings'),
    path('savings/<int:transaction_id>/delete/', views.delete_savings, name='delete_savings'),

    # Scholarships
    path('scholarships/', views.create_scholarship, name='create_scholarship'),
    path('scholarships/summary/', views.scholarship_summary, name='scholarship_summary'),
    path('scholarships/<int:pk>/update/', views.update_scholarship, name='update_scholarship'),
    path('scholarships/<int:pk>/delete/', views.delete_scholarship, name='delete_scholarship'),
    path('students/<int:student_id>/scholarships/', views.student_scholarships, name='student_scholarships'),

    # Tuition rates & academic years
    path('tuition-rates/', views.tuition_rates, name='tuition_rates'),
    path('tuition-rates/<int:pk>/update/', views.update_tuition_rate, name='update_tuition_rate'),
    path('tuition-rates/<int:pk>/delete/', views.delete_tuition_rate, name='delete_tuition_rate'),
    path('academic-years/', views.academic_years, name='academic_years'),
    path('academic-years/<int:pk>/', views.academic_year_detail, name='academic_year_detail'),
    path('academic-years/<int:pk>/update/', views.update_academic_year, name='update_academic_year'),
    path('academic-years/<int:pk>/activate/', views.activate_academic_year, name='activate_academic_year'),
    path('academic-years/<int:pk>/delete/', views.delete_academic_year, name='delete_academic_year'),
]
