import uuid

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Branch',
            fields=[
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(max_length=200, verbose_name='name')),
                ('address', models.CharField(blank=True, max_length=300, verbose_name='address')),
                ('is_active', models.BooleanField(default=True, verbose_name='active')),
            ],
            options={
                'verbose_name': 'branch',
                'verbose_name_plural': 'branches',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Product',
            fields=[
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('name', models.CharField(db_index=True, max_length=200, verbose_name='name')),
                ('sku', models.CharField(blank=True, max_length=64, verbose_name='SKU')),
                ('unit_type', models.CharField(
                    choices=[('UNIT', 'Unit'), ('WEIGHT', 'Weight'), ('VOLUME', 'Volume')],
                    default='UNIT', max_length=10, verbose_name='unit type',
                )),
                ('track_stock', models.BooleanField(default=True, verbose_name='track stock')),
                ('min_stock_alert', models.DecimalField(
                    blank=True, decimal_places=2, max_digits=12, null=True,
                    validators=[django.core.validators.MinValueValidator(0)],
                    verbose_name='minimum stock alert',
                )),
                ('is_active', models.BooleanField(default=True, verbose_name='active')),
            ],
            options={
                'verbose_name': 'product',
                'verbose_name_plural': 'products',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='ProductPrice',
            fields=[
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('price_type', models.CharField(
                    choices=[('DINE_IN', 'Dine in'), ('TAKE_AWAY', 'Take away'), ('DELIVERY', 'Delivery')],
                    max_length=10, verbose_name='price type',
                )),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='price')),
                ('branch', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name='prices',
                    to='catalog.branch', verbose_name='branch',
                )),
                ('product', models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name='prices',
                    to='catalog.product', verbose_name='product',
                )),
            ],
            options={
                'verbose_name': 'product price',
                'verbose_name_plural': 'product prices',
                'constraints': [
                    models.UniqueConstraint(
                        fields=('product', 'branch', 'price_type'),
                        name='catalog_price_unique_tier',
                    ),
                ],
            },
        ),
    ]
