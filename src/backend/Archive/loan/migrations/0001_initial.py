import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import Archive.helpers
import loan.validators


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('inventory', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='LoanRequest',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(default=loan.validators.generate_next_loan_request_reference, help_text='Loan request reference', max_length=64, unique=True, validators=[loan.validators.validate_loan_request_reference], verbose_name='Reference')),
                ('reference_int', models.BigIntegerField(default=0)),
                ('requester_name', models.CharField(max_length=250, verbose_name='Requester Name')),
                ('requester_email', models.EmailField(blank=True, max_length=254, verbose_name='Email')),
                ('requester_phone', models.CharField(blank=True, max_length=50, verbose_name='Phone')),
                ('department', models.CharField(blank=True, max_length=250, verbose_name='Department')),
                ('entity', models.CharField(blank=True, max_length=250, verbose_name='Entity')),
                ('justification', models.TextField(help_text='Why the documents are needed', verbose_name='Justification')),
                ('modality', models.CharField(choices=[('LOAN_ORIGINAL', 'Loan of original'), ('SIMPLE_COPY', 'Simple copy'), ('CERTIFIED_COPY', 'Certified copy'), ('ON_SITE_CONSULT', 'On-site consultation'), ('DIGITIZATION', 'Digitization'), ('REPROGRAPHY', 'Reprography'), ('OTHER', 'Other')], default='LOAN_ORIGINAL', max_length=32, verbose_name='Service Modality')),
                ('status', models.PositiveIntegerField(choices=[(10, 'Pending'), (20, 'Delivered'), (30, 'Partially Returned'), (40, 'Fully Returned'), (50, 'Rejected'), (60, 'Cancelled')], default=10, help_text='Loan request status', verbose_name='Status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created')),
                ('delivered_at', models.DateTimeField(blank=True, null=True, verbose_name='Delivered')),
                ('expected_return_date', models.DateField(blank=True, help_text='Date the originals are due back', null=True, verbose_name='Expected Return Date')),
                ('returned_at', models.DateTimeField(blank=True, help_text='Date and time the last item came back', null=True, verbose_name='Returned')),
                ('signature', models.TextField(blank=True, help_text='Signature of the requester at delivery', null=True, verbose_name='Signature')),
                ('delivery_notes', models.TextField(blank=True, verbose_name='Delivery Notes')),
                ('archive_notes', models.TextField(blank=True, verbose_name='Archive Notes')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
                ('delivered_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Delivered By')),
                ('requester', models.ForeignKey(blank=True, help_text='User who asked for the service', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='loan_requests', to=settings.AUTH_USER_MODEL, verbose_name='Requester')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Updated By')),
            ],
            options={
                'verbose_name': 'Loan Request',
                'verbose_name_plural': 'Loan Requests',
                'ordering': ['-reference_int'],
            },
        ),
        migrations.CreateModel(
            name='LoanItem',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('sequence', models.PositiveIntegerField(verbose_name='Sequence')),
                ('shelf_location', models.CharField(blank=True, help_text='Shelf location of the item at delivery time', max_length=250, verbose_name='Shelf Location')),
                ('delivered_at', models.DateTimeField(verbose_name='Delivered')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='loan_items', to='inventory.inventoryitem', verbose_name='Item')),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='items', to='loan.loanrequest', verbose_name='Loan Request')),
            ],
            options={
                'verbose_name': 'Loan Item',
                'verbose_name_plural': 'Loan Items',
                'ordering': ['request', 'sequence'],
            },
        ),
        migrations.AddConstraint(
            model_name='loanitem',
            constraint=models.UniqueConstraint(fields=('request', 'item'), name='unique_loan_request_item'),
        ),
        migrations.AddConstraint(
            model_name='loanitem',
            constraint=models.UniqueConstraint(fields=('request', 'sequence'), name='unique_loan_request_sequence'),
        ),
        migrations.CreateModel(
            name='ReturnRecord',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('signature', models.TextField(blank=True, null=True, verbose_name='Signature')),
                ('condition', models.CharField(blank=True, max_length=250, verbose_name='Condition')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('returned_at', models.DateTimeField(default=Archive.helpers.current_time, verbose_name='Returned')),
                ('item', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='return_records', to='inventory.inventoryitem', verbose_name='Item')),
                ('loan_item', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='return_record', to='loan.loanitem', verbose_name='Loan Item')),
                ('received_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Received By')),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='returns', to='loan.loanrequest', verbose_name='Loan Request')),
            ],
            options={
                'verbose_name': 'Return Record',
                'verbose_name_plural': 'Return Records',
                'ordering': ['returned_at', 'pk'],
            },
        ),
        migrations.CreateModel(
            name='DraftAttention',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('selection', models.JSONField(blank=True, default=list, verbose_name='Selection')),
                ('signature', models.TextField(blank=True, null=True, verbose_name='Signature')),
                ('notes', models.TextField(blank=True, verbose_name='Notes')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated')),
                ('request', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='draft', to='loan.loanrequest', verbose_name='Loan Request')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL, verbose_name='Updated By')),
            ],
            options={
                'verbose_name': 'Draft Attention',
                'verbose_name_plural': 'Draft Attentions',
            },
        ),
    ]
