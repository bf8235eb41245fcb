"""
Django management command to apply stock decrements that a checkout
recorded a sale for but could not apply
"""
from django.core.management.base import BaseCommand, CommandError
from django.db.models import Count, F

from maninventory.catalog.store import CatalogStore
from maninventory.core.models import ShopSettings
from maninventory.pos.ledger import LedgerStore
from maninventory.pos.models import Sale
from maninventory.pos.settlement import CheckoutSettlement


class Command(BaseCommand):
    help = 'Re-apply missing stock decrements for recorded sales'

    def add_arguments(self, parser):
        parser.add_argument(
            'sale_numbers',
            nargs='*',
            help='Sale numbers to resync (default: every sale with unsynced lines)',
        )
        parser.add_argument(
            '--username',
            help='Only resync sales of this account',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the sales that would be resynced without changing stock',
        )

    def handle(self, *args, **options):
        sale_numbers = options.get('sale_numbers') or []
        username = options.get('username')
        dry_run = options.get('dry_run', False)

        sales = Sale.objects.select_related('owner')
        if username:
            sales = sales.filter(owner__username=username)
        if sale_numbers:
            sales = sales.filter(sale_number__in=sale_numbers)
            missing = set(sale_numbers) - set(sales.values_list('sale_number', flat=True))
            if missing:
                raise CommandError(f"Unknown sale number(s): {', '.join(sorted(missing))}")
        else:
            sales = sales.annotate(
                line_count=Count('items', distinct=True),
                adjusted_count=Count('stock_adjustments', distinct=True),
            ).filter(adjusted_count__lt=F('line_count'))

        sales = list(sales.order_by('created_at'))
        self.stdout.write(f"Sales to resync: {len(sales)}")
        if dry_run:
            for sale in sales:
                self.stdout.write(f"  {sale.sale_number} ({sale.owner.username})")
            return

        still_failing = 0
        for sale in sales:
            settlement = CheckoutSettlement(
                CatalogStore(sale.owner),
                LedgerStore(sale.owner),
                ShopSettings.objects.filter(user=sale.owner).first(),
            )
            result = settlement.resync_sale_stock(sale)
            if result.is_partial:
                still_failing += 1
                self.stdout.write(self.style.WARNING(f"{sale.sale_number}: {result.warning.message}"))
                for failure in result.stock_failures:
                    self.stdout.write(f"    {failure.name} x {failure.quantity}: {failure.reason}")
            else:
                self.stdout.write(self.style.SUCCESS(f"{sale.sale_number}: stock in sync"))

        if still_failing:
            self.stdout.write(self.style.WARNING(f"{still_failing} sale(s) still have unsynced stock"))
        else:
            self.stdout.write(self.style.SUCCESS("All selected sales are in sync"))
