import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('academics', '0001_initial'),
        ('students', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='DocumentSequence',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=50, unique=True, verbose_name='Sequence Key')),
                ('last_value', models.PositiveIntegerField(default=0, verbose_name='Last Value')),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'Document Sequence',
                'verbose_name_plural': 'Document Sequences',
                'db_table': 'document_sequences',
            },
        ),
        migrations.CreateModel(
            name='TuitionRate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('grade_level', models.PositiveSmallIntegerField(verbose_name='Grade Level')),
                ('monthly_amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Monthly Amount')),
                ('due_date', models.PositiveSmallIntegerField(default=10, help_text='Day of the month the tuition is due', validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(31)], verbose_name='Due Day')),
                ('late_fee_enabled', models.BooleanField(default=False, verbose_name='Late Fee Enabled')),
                ('late_fee_type', models.CharField(blank=True, choices=[('fixed', 'Fixed Amount'), ('percentage', 'Percentage')], max_length=10, null=True, verbose_name='Late Fee Type')),
                ('late_fee_amount', models.DecimalField(blank=True, decimal_places=2, help_text='Fixed amount, or percentage of the monthly amount', max_digits=12, null=True, verbose_name='Late Fee Amount')),
                ('late_fee_start_day', models.PositiveSmallIntegerField(blank=True, help_text='Must come after the due day', null=True, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(31)], verbose_name='Late Fee Start Day')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('academic_year', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='tuition_rates', to='academics.academicyear', verbose_name='Academic Year')),
            ],
            options={
                'verbose_name': 'Tuition Rate',
                'verbose_name_plural': 'Tuition Rates',
                'db_table': 'spp_settings',
                'ordering': ['academic_year', 'grade_level'],
                'constraints': [models.UniqueConstraint(fields=('academic_year', 'grade_level'), name='unique_tuition_rate_per_grade')],
            },
        ),
        migrations.CreateModel(
            name='SppPayment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('receipt_number', models.CharField(max_length=50, unique=True, verbose_name='Receipt Number')),
                ('payment_date', models.DateField(verbose_name='Payment Date')),
                ('subtotal', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Subtotal')),
                ('discount', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12, verbose_name='Discount')),
                ('late_fee', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12, verbose_name='Late Fee')),
                ('total_amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Total Amount')),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('transfer', 'Bank Transfer')], default='cash', max_length=10, verbose_name='Payment Method')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('academic_year', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='spp_payments', to='academics.academicyear', verbose_name='Academic Year')),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='spp_payments_created', to=settings.AUTH_USER_MODEL, verbose_name='Received By')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='spp_payments', to='students.student', verbose_name='Student')),
            ],
            options={
                'verbose_name': 'SPP Payment',
                'verbose_name_plural': 'SPP Payments',
                'db_table': 'spp_payments',
                'ordering': ['-payment_date', '-id'],
                'indexes': [
                    models.Index(fields=['student', 'academic_year'], name='spp_pay_student_year_idx'),
                    models.Index(fields=['payment_date'], name='spp_pay_date_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SppPaymentDetail',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('month', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(12)], verbose_name='Month')),
                ('year', models.PositiveSmallIntegerField(verbose_name='Year')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Amount')),
                ('payment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='details', to='finance.spppayment', verbose_name='Payment')),
            ],
            options={
                'verbose_name': 'SPP Payment Detail',
                'verbose_name_plural': 'SPP Payment Details',
                'db_table': 'spp_payment_details',
                'ordering': ['year', 'month'],
                'constraints': [models.UniqueConstraint(fields=('payment', 'month', 'year'), name='unique_month_per_payment')],
            },
        ),
        migrations.CreateModel(
            name='SavingsTransaction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_number', models.CharField(max_length=50, unique=True, verbose_name='Transaction Number')),
                ('transaction_type', models.CharField(choices=[('deposit', 'Deposit'), ('withdrawal', 'Withdrawal')], max_length=10, verbose_name='Transaction Type')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Amount')),
                ('balance_before', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Balance Before')),
                ('balance_after', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Balance After')),
                ('transaction_date', models.DateField(verbose_name='Transaction Date')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='savings_transactions_created', to=settings.AUTH_USER_MODEL, verbose_name='Recorded By')),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='savings_transactions', to='students.student', verbose_name='Student')),
            ],
            options={
                'verbose_name': 'Savings Transaction',
                'verbose_name_plural': 'Savings Transactions',
                'db_table': 'savings_transactions',
                'ordering': ['transaction_date', 'id'],
                'indexes': [
                    models.Index(fields=['student', 'transaction_date', 'id'], name='savings_student_order_idx'),
                    models.Index(fields=['transaction_type'], name='savings_type_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='savings_amount_positive'),
                    models.CheckConstraint(condition=models.Q(('balance_after__gte', 0)), name='savings_balance_not_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='SavingsAccount',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('balance', models.DecimalField(decimal_places=2, default=Decimal('0'), max_digits=12, verbose_name='Balance')),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('last_transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to='finance.savingstransaction', verbose_name='Last Transaction')),
                ('student', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='savings_account', to='students.student', verbose_name='Student')),
            ],
            options={
                'verbose_name': 'Savings Account',
                'verbose_name_plural': 'Savings Accounts',
                'db_table': 'savings_accounts',
            },
        ),
        migrations.CreateModel(
            name='Scholarship',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(max_length=255, verbose_name='Scholarship Name')),
                ('scholarship_type', models.CharField(choices=[('full', 'Full'), ('partial', 'Partial')], default='full', max_length=10, verbose_name='Scholarship Type')),
                ('discount_percentage', models.DecimalField(blank=True, decimal_places=2, help_text='Partial scholarships only; leave empty when a fixed amount is set', max_digits=5, null=True, verbose_name='Discount (%)')),
                ('discount_amount', models.DecimalField(blank=True, decimal_places=2, help_text='Partial scholarships only; fixed discount per month', max_digits=12, null=True, verbose_name='Discount Amount')),
                ('start_date', models.DateField(verbose_name='Start Date')),
                ('end_date', models.DateField(verbose_name='End Date')),
                ('status', models.CharField(choices=[('active', 'Active'), ('inactive', 'Inactive'), ('expired', 'Expired')], default='active', editable=False, max_length=10, verbose_name='Status')),
                ('description', models.TextField(blank=True, verbose_name='Description')),
                ('sponsor', models.CharField(blank=True, max_length=255, verbose_name='Sponsor')),
                ('requirements', models.TextField(blank=True, verbose_name='Requirements')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('academic_year', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='scholarships', to='academics.academicyear', verbose_name='Academic Year')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_scholarships', to=settings.AUTH_USER_MODEL)),
                ('student', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='scholarships', to='students.student', verbose_name='Student')),
            ],
            options={
                'verbose_name': 'Scholarship',
                'verbose_name_plural': 'Scholarships',
                'db_table': 'scholarships',
                'ordering': ['-start_date', '-id'],
                'indexes': [models.Index(fields=['student', 'status'], name='scholarship_student_status_idx')],
            },
        ),
    ]
