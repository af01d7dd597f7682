import decimal
import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('catalog', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='StockBalance',
            fields=[
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, verbose_name='created at')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='updated at')),
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.DecimalField(
                    decimal_places=2, default=decimal.Decimal('0'), max_digits=12, verbose_name='quantity',
                )),
                ('min_stock', models.DecimalField(
                    blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='minimum stock',
                )),
                ('max_stock', models.DecimalField(
                    blank=True, decimal_places=2, max_digits=12, null=True, verbose_name='maximum stock',
                )),
                ('last_restocked_at', models.DateTimeField(blank=True, null=True, verbose_name='last restocked at')),
                ('is_active', models.BooleanField(db_index=True, default=True, verbose_name='active')),
                ('version', models.PositiveIntegerField(
                    default=0,
                    help_text='Incremented on every quantity write; used for compare-and-swap.',
                    verbose_name='version',
                )),
                ('branch', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='stock_balances',
                    to='catalog.branch', verbose_name='branch',
                )),
                ('product', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='stock_balances',
                    to='catalog.product', verbose_name='product',
                )),
            ],
            options={
                'verbose_name': 'stock balance',
                'verbose_name_plural': 'stock balances',
                'db_table': 'stock_balances',
                'ordering': ['branch', 'product'],
                'permissions': [
                    ('adjust_stock', 'Can adjust stock levels'),
                    ('configure_stock', 'Can configure stock thresholds and visibility'),
                ],
                'indexes': [
                    models.Index(fields=['branch', 'is_active'], name='stock_balance_branch_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('product', 'branch'), name='stock_balance_unique_key'),
                    models.CheckConstraint(condition=models.Q(quantity__gte=0), name='stock_balance_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StockMovement',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('sequence', models.PositiveIntegerField(verbose_name='sequence')),
                ('delta', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='delta')),
                ('previous_quantity', models.DecimalField(
                    decimal_places=2, max_digits=12, verbose_name='previous quantity',
                )),
                ('resulting_quantity', models.DecimalField(
                    decimal_places=2, max_digits=12, verbose_name='resulting quantity',
                )),
                ('reason', models.CharField(db_index=True, max_length=100, verbose_name='reason')),
                ('notes', models.TextField(blank=True, verbose_name='notes')),
                ('external_reference', models.CharField(
                    blank=True, max_length=100,
                    help_text='Identifier of the source event (delivery note, order, count sheet).',
                    verbose_name='external reference',
                )),
                ('actor_id', models.CharField(
                    blank=True, max_length=100,
                    help_text='User primary key or system process that triggered the movement.',
                    verbose_name='actor',
                )),
                ('created_at', models.DateTimeField(
                    db_index=True, default=django.utils.timezone.now, editable=False, verbose_name='created at',
                )),
                ('balance', models.ForeignKey(
                    on_delete=django.db.models.deletion.PROTECT, related_name='movements',
                    to='stock.stockbalance', verbose_name='balance',
                )),
            ],
            options={
                'verbose_name': 'stock movement',
                'verbose_name_plural': 'stock movements',
                'db_table': 'stock_movements',
                'ordering': ['-created_at', '-sequence'],
                'indexes': [
                    models.Index(fields=['created_at', 'sequence'], name='stock_movement_created_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('balance', 'sequence'), name='stock_movement_unique_sequence'),
                ],
            },
        ),
    ]
