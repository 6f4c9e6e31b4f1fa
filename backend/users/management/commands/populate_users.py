from __future__ import annotations

from typing import Iterable

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from users.models import LicensePlate

User = get_user_model()

FIRST_NAMES = ["Sam", "Robin", "Elliot", "Frankie", "Jesse", "Marley", "Sasha", "Toby"]

LAST_NAMES = ["Okafor", "Rossi", "Kowalski", "Haddad", "Moreau", "Tanaka"]

PLATE_STATES = ["CA", "NY", "TX", "WA", "IL"]


def phone_generator(existing_numbers: set[str], start: int = 2025550000) -> Iterable[str]:
    current = start
    while True:
        phone = f"+1{current:010d}"
        current += 1
        if phone in existing_numbers:
            continue
        existing_numbers.add(phone)
        yield phone


class Command(BaseCommand):
    help = "Populate host and driver accounts; every seeded driver gets a default plate."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--hosts",
            type=int,
            default=2,
            help="Number of host accounts to create.",
        )
        parser.add_argument(
            "--drivers",
            type=int,
            default=4,
            help="Number of driver accounts to create.",
        )
        parser.add_argument(
            "--password",
            type=str,
            default="test-pass",
            help="Password for newly created users.",
        )

    def handle(self, *args, **options) -> None:
        hosts = options["hosts"]
        drivers = options["drivers"]
        password = options["password"]
        if hosts < 0 or drivers < 0:
            raise CommandError("--hosts and --drivers must be >= 0.")

        with transaction.atomic():
            existing_phones = set(
                User.objects.exclude(phone__isnull=True)
                .exclude(phone="")
                .values_list("phone", flat=True)
            )
            phone_iter = phone_generator(existing_phones)
            created_hosts = self._create_users(User.Role.HOST, hosts, password, phone_iter)
            created_drivers = self._create_users(User.Role.DRIVER, drivers, password, phone_iter)

        self.stdout.write(self.style.SUCCESS("User population complete."))
        self.stdout.write(f"Hosts created: {len(created_hosts)}")
        self.stdout.write(f"Drivers created: {len(created_drivers)}")

    def _create_users(
        self,
        role: str,
        count: int,
        password: str,
        phone_iter: Iterable[str],
    ) -> list[User]:
        if count == 0:
            return []

        base_username = f"seed{role}"
        existing_usernames = set(
            User.objects.filter(username__startswith=base_username).values_list(
                "username", flat=True
            )
        )
        index = 1
        created = []
        while len(created) < count:
            username = f"{base_username}{index}"
            index += 1
            if username in existing_usernames:
                continue
            user = User.objects.create_user(
                username=username,
                email=f"{username}@example.com",
                phone=next(phone_iter),
                password=password,
                role=role,
                first_name=FIRST_NAMES[index % len(FIRST_NAMES)],
                last_name=LAST_NAMES[index % len(LAST_NAMES)],
            )
            if role == User.Role.DRIVER:
                LicensePlate.objects.create(
                    user=user,
                    plate_number=f"SEED{user.id:03d}"[:8],
                    state=PLATE_STATES[user.id % len(PLATE_STATES)],
                    is_default=True,
                )
            created.append(user)
        return created
