from __future__ import annotations

from datetime import time
from decimal import Decimal
from itertools import cycle

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from listings.models import Listing

User = get_user_model()

LISTING_SEEDS = [
    {
        "title": "Covered Driveway near Downtown",
        "description": "Single covered spot, fits a mid-size SUV. Gate code shared after booking.",
        "address": "412 Market St",
        "city": "San Francisco",
        "price_per_hour": Decimal("6.50"),
        "available_from": time(7, 0),
        "available_to": time(20, 0),
    },
    {
        "title": "Garage Spot by the Stadium",
        "description": "Private garage, EV outlet available on request.",
        "address": "88 King St",
        "city": "San Francisco",
        "price_per_hour": Decimal("10.00"),
        "available_from": time(9, 0),
        "available_to": time(23, 0),
    },
    {
        "title": "Open Lot Space, Midtown",
        "description": "Paved open-air space two blocks from the subway.",
        "address": "250 W 39th St",
        "city": "New York",
        "price_per_hour": Decimal("12.00"),
        "available_from": time(6, 0),
        "available_to": time(22, 0),
    },
    {
        "title": "Residential Driveway, South Congress",
        "description": "Quiet street, easy walk to the shops.",
        "address": "1600 S Congress Ave",
        "city": "Austin",
        "price_per_hour": Decimal("4.00"),
        "available_from": time(8, 0),
        "available_to": time(18, 0),
    },
]


class Command(BaseCommand):
    help = "Populate parking listings for existing host accounts."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--count",
            type=int,
            default=8,
            help="Number of listings to create.",
        )

    def handle(self, *args, **options) -> None:
        count = options["count"]
        if count <= 0:
            raise CommandError("--count must be greater than 0.")

        hosts = list(User.objects.filter(role=User.Role.HOST).order_by("id"))
        if not hosts:
            raise CommandError("No host users found. Create hosts before adding listings.")

        with transaction.atomic():
            created = self._create_listings(count=count, hosts=hosts)

        self.stdout.write(self.style.SUCCESS("Listing population complete."))
        self.stdout.write(f"Listings created: {created}")

    def _create_listings(self, *, count: int, hosts: list[User]) -> int:
        hosts_cycle = cycle(hosts)
        created = 0
        for index in range(count):
            seed = LISTING_SEEDS[index % len(LISTING_SEEDS)]
            Listing.objects.create(owner=next(hosts_cycle), is_active=True, **seed)
            created += 1
        return created
