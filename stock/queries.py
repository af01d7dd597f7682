"""
Stock — Query Service

Read-side projections over balances and the movement ledger: movement
history, the per-branch summary with valuation, ranked low-stock alerts,
stock status per balance and ledger chain verification.

Nothing here writes or locks.

@file stock/queries.py
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from catalog.services import DjangoProductCatalog, ProductCatalog, ProductInfo
from core.constants import STOCK_MOVEMENT_PAGE_SIZE, STOCK_VALUATION_PRICE_TYPE
from core.exceptions import ResourceNotFoundError

from .models import BalanceKey, StockBalance, StockMovement, StockStatus
from .services import ledger_setting
from .stores import BalanceStore, DjangoBalanceStore, DjangoLedgerStore, LedgerStore, MovementQuery

logger = logging.getLogger('branchstock')


def stock_status(quantity: Decimal, product: ProductInfo | None) -> str:
    """Classify one balance for display and filtering."""
    if product is None or not product.tracking_enabled:
        return StockStatus.ALWAYS_AVAILABLE
    if quantity <= 0:
        return StockStatus.OUT_OF_STOCK
    if product.min_stock_alert is not None and quantity < product.min_stock_alert:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


@dataclass(frozen=True)
class BranchStockItem:
    balance: StockBalance
    product: ProductInfo | None
    status: str
    unit_price: Decimal | None = None
    stock_value: Decimal | None = None


@dataclass(frozen=True)
class BranchStockSummary:
    branch_id: UUID
    total_products: int
    low_stock_count: int
    out_of_stock_count: int
    total_stock_value: Decimal
    items: list[BranchStockItem] = field(default_factory=list)


@dataclass(frozen=True)
class LowStockAlert:
    """A tracked balance below its product's alert threshold."""

    balance: StockBalance
    product: ProductInfo
    threshold: Decimal
    urgency_ratio: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.threshold - self.balance.quantity


@dataclass(frozen=True)
class LedgerCheck:
    key: BalanceKey
    ok: bool
    movement_count: int
    problems: list[str] = field(default_factory=list)


class StockQueryService:
    """
    Usage:
        queries = StockQueryService()
        summary = queries.branch_stock_summary(branch_id)
        alerts = queries.low_stock_alerts(branch_id)
    """

    def __init__(
        self,
        *,
        balances: BalanceStore | None = None,
        ledger: LedgerStore | None = None,
        catalog: ProductCatalog | None = None,
        page_size: int | None = None,
        price_type: str | None = None,
    ):
        self.balances = balances if balances is not None else DjangoBalanceStore()
        self.ledger = ledger if ledger is not None else DjangoLedgerStore()
        self.catalog = catalog if catalog is not None else DjangoProductCatalog()
        self.page_size = page_size or ledger_setting('MOVEMENT_PAGE_SIZE', STOCK_MOVEMENT_PAGE_SIZE)
        self.price_type = price_type or ledger_setting('VALUATION_PRICE_TYPE', STOCK_VALUATION_PRICE_TYPE)

    # ------------------------------------------------------------------
    # Movements
    # ------------------------------------------------------------------

    def list_movements(self, query: MovementQuery | None = None) -> list[StockMovement]:
        """Newest first, capped at the movement page size. An empty query matches everything."""
        return self.ledger.search(query or MovementQuery(), limit=self.page_size)

    def movement_chain(self, key: BalanceKey) -> list[StockMovement]:
        """Full history of one balance, oldest first."""
        if self.balances.get(key) is None:
            raise ResourceNotFoundError(
                detail=f'No stock balance for product {key.product_id} at branch {key.branch_id}.',
            )
        return self.ledger.chain(key)

    # ------------------------------------------------------------------
    # Branch views
    # ------------------------------------------------------------------

    def branch_stock_summary(self, branch_id: UUID) -> BranchStockSummary:
        """
        Counts and valuation over the active balances of a branch.

        Only tracked products count as low / out of stock and contribute
        to the stock value; a tracked product without a price at the
        valuation tier contributes nothing.
        """
        items = self._branch_items(branch_id, active_only=True)
        low_stock = out_of_stock = 0
        total_value = Decimal('0')
        for item in items:
            product = item.product
            if product is None or not product.tracking_enabled:
                continue
            quantity = item.balance.quantity
            if product.min_stock_alert is not None and quantity < product.min_stock_alert:
                low_stock += 1
            if quantity == 0:
                out_of_stock += 1
            if item.stock_value is not None:
                total_value += item.stock_value
        return BranchStockSummary(
            branch_id=branch_id,
            total_products=len(items),
            low_stock_count=low_stock,
            out_of_stock_count=out_of_stock,
            total_stock_value=total_value,
            items=items,
        )

    def low_stock_alerts(self, branch_id: UUID) -> list[LowStockAlert]:
        """
        Active, tracked, active-product balances strictly below a set
        threshold, most urgent (lowest quantity / threshold) first; ties
        broken by product name.
        """
        balances = self.balances.list_for_branch(branch_id, active_only=True)
        products = self.catalog.get_products([balance.product_id for balance in balances])
        alerts = []
        for balance in balances:
            product = products.get(balance.product_id)
            if product is None or not product.tracking_enabled or not product.is_active:
                continue
            threshold = product.min_stock_alert
            if threshold is None or threshold <= 0 or balance.quantity >= threshold:
                continue
            alerts.append(LowStockAlert(
                balance=balance,
                product=product,
                threshold=threshold,
                urgency_ratio=balance.quantity / threshold,
            ))
        alerts.sort(key=lambda alert: (alert.urgency_ratio, alert.product.name))
        return alerts

    def list_branch_stock(
        self, branch_id: UUID, *, status: str | None = None, include_inactive: bool = False,
    ) -> list[BranchStockItem]:
        items = self._branch_items(branch_id, active_only=not include_inactive)
        if status is not None:
            items = [item for item in items if item.status == status]
        return items

    def _branch_items(self, branch_id: UUID, *, active_only: bool) -> list[BranchStockItem]:
        balances = self.balances.list_for_branch(branch_id, active_only=active_only)
        product_ids = [balance.product_id for balance in balances]
        products = self.catalog.get_products(product_ids)
        prices = self.catalog.get_prices(branch_id, product_ids, self.price_type)
        items = []
        for balance in balances:
            product = products.get(balance.product_id)
            tracked = product is not None and product.tracking_enabled
            price = prices.get(balance.product_id)
            items.append(BranchStockItem(
                balance=balance,
                product=product,
                status=stock_status(balance.quantity, product),
                unit_price=price,
                stock_value=balance.quantity * price if tracked and price is not None else None,
            ))
        items.sort(key=lambda item: (item.product.name if item.product else '', str(item.balance.product_id)))
        return items

    # ------------------------------------------------------------------
    # Ledger verification
    # ------------------------------------------------------------------

    def verify_ledger(self, key: BalanceKey) -> LedgerCheck:
        """
        Check that a balance's chain is gapless and arithmetically
        consistent, and that the balance equals the chain's tail.
        """
        balance = self.balances.get(key)
        if balance is None:
            raise ResourceNotFoundError(
                detail=f'No stock balance for product {key.product_id} at branch {key.branch_id}.',
            )
        chain = self.ledger.chain(key)
        problems = []
        expected_previous = None
        for position, movement in enumerate(chain, start=1):
            if movement.sequence != position:
                problems.append(f'movement {movement.pk} has sequence {movement.sequence}, expected {position}')
            if movement.previous_quantity + movement.delta != movement.resulting_quantity:
                problems.append(f'movement {movement.pk} does not add up')
            if expected_previous is not None and movement.previous_quantity != expected_previous:
                problems.append(
                    f'movement {movement.pk} starts at {movement.previous_quantity}, '
                    f'previous movement ended at {expected_previous}',
                )
            expected_previous = movement.resulting_quantity

        if chain:
            if balance.quantity != chain[-1].resulting_quantity:
                problems.append(
                    f'balance is {balance.quantity} but ledger ends at {chain[-1].resulting_quantity}',
                )
        elif balance.quantity != 0:
            problems.append(f'balance is {balance.quantity} with no movements')
        if balance.version != len(chain):
            problems.append(f'balance version {balance.version} does not match {len(chain)} movements')

        return LedgerCheck(key=key, ok=not problems, movement_count=len(chain), problems=problems)

    def verify_all(self, branch_id: UUID | None = None) -> list[LedgerCheck]:
        checks = [self.verify_ledger(key) for key in self.balances.list_keys(branch_id)]
        for check in checks:
            if not check.ok:
                logger.error('Stock ledger inconsistent for %s: %s', check.key, '; '.join(check.problems))
        return checks
