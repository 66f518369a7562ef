from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='InventoryItem',
            fields=[
                ('id', models.AutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('code', models.CharField(help_text='Unique item code', max_length=64, unique=True, verbose_name='Code')),
                ('description', models.CharField(blank=True, help_text='Item description', max_length=500, verbose_name='Description')),
                ('organizational_unit', models.CharField(blank=True, help_text='Unit which produced the documents', max_length=250, verbose_name='Organizational Unit')),
                ('document_series', models.CharField(blank=True, max_length=250, verbose_name='Document Series')),
                ('room', models.CharField(blank=True, max_length=50, verbose_name='Room')),
                ('shelf', models.CharField(blank=True, max_length=20, verbose_name='Shelf')),
                ('section', models.CharField(blank=True, max_length=20, verbose_name='Section')),
                ('tier', models.CharField(blank=True, max_length=20, verbose_name='Tier')),
                ('box_number', models.CharField(blank=True, max_length=20, verbose_name='Box Number')),
                ('volume_number', models.CharField(blank=True, max_length=20, verbose_name='Volume Number')),
                ('folio_count', models.PositiveIntegerField(blank=True, null=True, verbose_name='Folio Count')),
                ('availability', models.PositiveIntegerField(choices=[(10, 'Available'), (20, 'On Loan'), (30, 'In Service'), (50, 'Not Located')], default=10, help_text='Loanable state of this item', verbose_name='Availability')),
                ('lifecycle_status', models.PositiveIntegerField(choices=[(10, 'Active'), (20, 'Transferred'), (30, 'Disposed')], default=10, verbose_name='Lifecycle Status')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated')),
            ],
            options={
                'verbose_name': 'Inventory Item',
                'verbose_name_plural': 'Inventory Items',
                'ordering': ['code'],
            },
        ),
    ]
